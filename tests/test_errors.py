# tests/test_errors.py
"""Unit tests for diffeq_operators.errors."""

from __future__ import annotations

import numpy as np
import pytest

from diffeq_operators import (
    DiffEqOperatorError,
    ErrorCode,
    InvalidOperatorError,
    MatrixOperator,
    OperandTypeError,
    ScalarOperator,
    UnsupportedOperationError,
)
from diffeq_operators.errors import (
    raise_operand_type_error,
    raise_unsupported_operation,
)


def test_error_codes_are_strings() -> None:
    """Codes compare equal to their string values."""
    assert ErrorCode.UNSUPPORTED_OPERATION == "unsupported_operation"
    assert ErrorCode.OPERAND_TYPE_MISMATCH == "operand_type_mismatch"
    assert ErrorCode.INVALID_OPERATOR == "invalid_operator"


@pytest.mark.parametrize(
    ("cls", "builtin"),
    [
        (UnsupportedOperationError, TypeError),
        (OperandTypeError, TypeError),
        (InvalidOperatorError, ValueError),
    ],
)
def test_errors_derive_from_builtins(
    cls: type[Exception], builtin: type[Exception]
) -> None:
    """Generic handlers for the builtin keep catching package errors."""
    assert issubclass(cls, DiffEqOperatorError)
    assert issubclass(cls, builtin)


def test_code_defaults_to_none() -> None:
    """The code is optional."""
    assert DiffEqOperatorError("boom").code is None


def test_unsupported_operation_message() -> None:
    """The message names the operation, the operator and what it supports."""
    with pytest.raises(UnsupportedOperationError) as excinfo:
        raise_unsupported_operation("expm", ScalarOperator(1.0), supported="scaling")
    msg = str(excinfo.value)
    assert msg == (
        "expm is not supported by ScalarOperator. "
        "ScalarOperator supports only: scaling."
    )
    assert excinfo.value.code == ErrorCode.UNSUPPORTED_OPERATION


def test_unsupported_operation_accepts_class() -> None:
    """Passing the class instead of an instance names the class."""
    with pytest.raises(UnsupportedOperationError, match="by MatrixOperator"):
        raise_unsupported_operation("ldiv", MatrixOperator)


def test_operand_type_message() -> None:
    """Both dtypes appear in the message."""
    with pytest.raises(OperandTypeError) as excinfo:
        raise_operand_type_error(
            "mul", expected=np.dtype(np.float64), got=np.dtype(np.int64)
        )
    assert str(excinfo.value) == (
        "mul: operand dtype int64 does not match operator dtype float64"
    )
    assert excinfo.value.code == ErrorCode.OPERAND_TYPE_MISMATCH


def test_base_operator_methods_list_supported_set() -> None:
    """Unsupported members report the operator's capability set."""
    op = ScalarOperator(1.0)
    with pytest.raises(
        UnsupportedOperationError, match="supports only: update_coefficients"
    ):
        op.to_dense()
    with pytest.raises(UnsupportedOperationError, match="@"):
        _ = op @ np.ones(2)
