"""Error types and message helpers for diffeq_operators.

Design intent:
- Failures raised here are classified by an ErrorCode so callers can branch on
  them without depending on a wide taxonomy of custom subclasses.
- Every custom exception also derives from the builtin Python would have
  raised (TypeError, ValueError), so generic handlers keep working.
- Failures coming from NumPy/SciPy (singular matrices, shape mismatches) are
  never wrapped here; they propagate unchanged.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final, NoReturn

_UNSUPPORTED_OPERATION_MSG: Final[str] = (
    "{operation} is not supported by {operator}. "
    "{operator} supports only: {supported}."
)
_OPERAND_TYPE_MSG: Final[str] = (
    "{operation}: operand dtype {got} does not match operator dtype {expected}"
)


class ErrorCode(StrEnum):
    """Machine-readable classification for diffeq_operators failures."""

    UNSUPPORTED_OPERATION = "unsupported_operation"
    OPERAND_TYPE_MISMATCH = "operand_type_mismatch"
    INVALID_OPERATOR = "invalid_operator"


class DiffEqOperatorError(Exception):
    """Base exception for diffeq_operators errors."""

    def __init__(self, message: str, *, code: ErrorCode | None = None) -> None:
        """
        Initialize a DiffEqOperatorError.

        Args:
            message: Human-readable error message.
            code: Optional machine-readable error code classifying the error.
        """
        super().__init__(message)
        self.code: ErrorCode | None = code


class UnsupportedOperationError(DiffEqOperatorError, TypeError):
    """Raised when an operator kind does not provide the requested operation."""


class OperandTypeError(DiffEqOperatorError, TypeError):
    """Raised when an operand's element type does not match the operator's."""


class InvalidOperatorError(DiffEqOperatorError, ValueError):
    """Raised when an operator is constructed from an unusable value."""


def raise_unsupported_operation(
    operation: str,
    operator: object,
    *,
    supported: str = "shape queries",
) -> NoReturn:
    """
    Raise a standardized unsupported-operation error.

    Args:
        operation: Name of the attempted operation.
        operator: Operator instance (or class) the operation was attempted on.
        supported: Short description of what the operator does support.

    Raises:
        UnsupportedOperationError: Always.
    """
    name = operator.__name__ if isinstance(operator, type) else type(operator).__name__
    msg = _UNSUPPORTED_OPERATION_MSG.format(
        operation=operation, operator=name, supported=supported
    )
    raise UnsupportedOperationError(msg, code=ErrorCode.UNSUPPORTED_OPERATION)


def raise_operand_type_error(
    operation: str, *, expected: object, got: object
) -> NoReturn:
    """
    Raise a standardized operand dtype mismatch error.

    Args:
        operation: Name of the attempted operation.
        expected: The operator's dtype.
        got: The operand's dtype.

    Raises:
        OperandTypeError: Always.
    """
    msg = _OPERAND_TYPE_MSG.format(operation=operation, expected=expected, got=got)
    raise OperandTypeError(msg, code=ErrorCode.OPERAND_TYPE_MISMATCH)
