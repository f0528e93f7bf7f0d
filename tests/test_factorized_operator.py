# tests/test_factorized_operator.py
"""Unit tests for diffeq_operators.operators.FactorizedMatrixOperator.

This module verifies:
- MatrixOperator.factorize and the named factorization methods produce
  FactorizedMatrixOperator instances that reproduce A and solve A x = b.
- Factorized operators are constant, immutable, and update to themselves.
- Multiplication, application and set_value raise UnsupportedOperationError.
- Collaborator failures (not positive definite, singular) propagate unchanged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest
from scipy.sparse import csr_matrix

from diffeq_operators import (
    CholeskyFactorization,
    ErrorCode,
    FactorizedMatrixOperator,
    LUFactorization,
    MatrixOperator,
    SparseLUFactorization,
    UnsupportedOperationError,
)

if TYPE_CHECKING:
    from numpy.typing import NDArray

    FloatArray = NDArray[np.floating]


_NAMED = ("lu", "qr", "cholesky", "ldlt", "bunch_kaufman", "lq", "svd")


# -------------------------------------------------------------------
# Construction from MatrixOperator
# -------------------------------------------------------------------


def test_factorize_round_trip(general_matrix: FloatArray) -> None:
    """Converting a factorization back to dense reproduces A."""
    fact = MatrixOperator(general_matrix).factorize()
    assert isinstance(fact, FactorizedMatrixOperator)
    assert isinstance(fact.factorization, LUFactorization)

    dense = fact.to_dense()
    rel = np.linalg.norm(dense - general_matrix) / np.linalg.norm(general_matrix)
    assert rel < 1e-10
    np.testing.assert_allclose(np.asarray(fact), general_matrix, rtol=1e-10)
    np.testing.assert_allclose(fact.as_matrix(), general_matrix, rtol=1e-10)


def test_factorize_solves(general_matrix: FloatArray, rhs: FloatArray) -> None:
    """left_divide returns x with A @ x = b."""
    fact = MatrixOperator(general_matrix).factorize()
    x = fact.left_divide(rhs)
    np.testing.assert_allclose(general_matrix @ x, rhs, atol=1e-10)

    rhs2 = np.column_stack([rhs, 2.0 * rhs])
    x2 = fact.left_divide(rhs2)
    np.testing.assert_allclose(general_matrix @ x2, rhs2, atol=1e-10)


def test_ldiv_writes_into_output(spd_matrix: FloatArray, rhs: FloatArray) -> None:
    """ldiv solves into the given array and returns it."""
    fact = MatrixOperator(spd_matrix).cholesky()
    out = np.empty_like(rhs)
    assert fact.ldiv(out, rhs) is out
    np.testing.assert_allclose(spd_matrix @ out, rhs, atol=1e-10)


@pytest.mark.factorization
@pytest.mark.parametrize("name", _NAMED)
def test_named_factorization_methods(
    name: str, spd_matrix: FloatArray, rhs: FloatArray
) -> None:
    """Every named factorization reproduces A and solves A x = b."""
    op = MatrixOperator(spd_matrix)
    fact = getattr(op, name)()

    assert isinstance(fact, FactorizedMatrixOperator)
    assert fact.shape == spd_matrix.shape
    np.testing.assert_allclose(fact.to_dense(), spd_matrix, rtol=1e-10, atol=1e-10)
    np.testing.assert_allclose(spd_matrix @ fact.left_divide(rhs), rhs, atol=1e-9)


@pytest.mark.factorization
@pytest.mark.parametrize("name", _NAMED)
def test_in_place_variants_solve(
    name: str, spd_matrix: FloatArray, rhs: FloatArray
) -> None:
    """In-place variants factorize the wrapped matrix's storage."""
    op = MatrixOperator(np.asfortranarray(spd_matrix.copy()))
    fact = getattr(op, f"{name}_inplace")()
    np.testing.assert_allclose(spd_matrix @ fact.left_divide(rhs), rhs, atol=1e-9)


def test_extra_arguments_pass_through(spd_matrix: FloatArray) -> None:
    """Keyword arguments reach the SciPy routine."""
    fact = MatrixOperator(spd_matrix).cholesky(lower=True)
    assert isinstance(fact.factorization, CholeskyFactorization)
    assert fact.factorization.lower is True
    np.testing.assert_allclose(fact.to_dense(), spd_matrix, rtol=1e-10)


def test_sparse_factorize(general_matrix: FloatArray, rhs: FloatArray) -> None:
    """Sparse matrices factorize with SuperLU."""
    fact = MatrixOperator(csr_matrix(general_matrix)).factorize()
    assert isinstance(fact.factorization, SparseLUFactorization)
    np.testing.assert_allclose(general_matrix @ fact.left_divide(rhs), rhs, atol=1e-10)
    np.testing.assert_allclose(fact.to_dense(), general_matrix, rtol=1e-10, atol=1e-12)

    assert isinstance(MatrixOperator(csr_matrix(general_matrix)).lu().factorization, (
        SparseLUFactorization
    ))


def test_factorization_is_a_snapshot(
    general_matrix: FloatArray, rhs: FloatArray
) -> None:
    """Later updates of the source matrix do not affect the factorization."""
    a = general_matrix.copy()
    op = MatrixOperator(a)
    fact = op.lu()
    x_before = fact.left_divide(rhs)

    a *= 3.0

    np.testing.assert_allclose(fact.left_divide(rhs), x_before)


# -------------------------------------------------------------------
# Constant-ness and immutability
# -------------------------------------------------------------------


def test_always_constant(general_matrix: FloatArray) -> None:
    """is_constant is True and update_coefficients is an identity."""
    op = MatrixOperator(
        general_matrix,
        update_func=lambda a, u, p, t: None,  # noqa: ARG005
    )
    assert not op.is_constant()

    fact = op.factorize()
    assert fact.is_constant()
    assert fact.update_coefficients(np.ones(6), None, 1.0) is fact


def test_immutable(general_matrix: FloatArray) -> None:
    """Attributes cannot be reassigned."""
    fact = MatrixOperator(general_matrix).factorize()
    with pytest.raises(AttributeError, match="immutable"):
        fact._factorization = None  # noqa: SLF001


def test_shape_queries(rng: np.random.Generator) -> None:
    """size forwards to the factorization handle."""
    a = rng.standard_normal((7, 4))
    fact = MatrixOperator(a).qr()
    assert fact.shape == (7, 4)
    assert fact.size() == (7, 4)
    assert fact.size(0) == 7
    assert fact.size(1) == 4


# -------------------------------------------------------------------
# Unsupported operations
# -------------------------------------------------------------------


def test_multiplication_unsupported(
    general_matrix: FloatArray, rhs: FloatArray
) -> None:
    """Factorizations support only solves and introspection."""
    fact = MatrixOperator(general_matrix).factorize()

    with pytest.raises(UnsupportedOperationError) as excinfo:
        _ = fact @ rhs
    assert excinfo.value.code == ErrorCode.UNSUPPORTED_OPERATION
    assert "FactorizedMatrixOperator" in str(excinfo.value)

    with pytest.raises(UnsupportedOperationError):
        _ = rhs @ fact
    with pytest.raises(UnsupportedOperationError):
        _ = fact * rhs
    with pytest.raises(UnsupportedOperationError):
        _ = rhs * fact
    with pytest.raises(UnsupportedOperationError):
        fact.mul(np.empty_like(rhs), rhs)


def test_application_and_mutation_unsupported(
    general_matrix: FloatArray, rhs: FloatArray
) -> None:
    """Callable forms and set_value are not available."""
    fact = MatrixOperator(general_matrix).factorize()

    with pytest.raises(UnsupportedOperationError):
        fact(rhs, None, 0.0)
    with pytest.raises(UnsupportedOperationError):
        fact(np.empty_like(rhs), rhs, None, 0.0)
    with pytest.raises(UnsupportedOperationError):
        fact.set_value(general_matrix)
    with pytest.raises(UnsupportedOperationError):
        fact.right_divide(rhs)


# -------------------------------------------------------------------
# Collaborator failures
# -------------------------------------------------------------------


def test_cholesky_of_indefinite_matrix_propagates(
    indefinite_matrix: FloatArray
) -> None:
    """LinAlgError from SciPy is not wrapped."""
    with pytest.raises(np.linalg.LinAlgError):
        MatrixOperator(indefinite_matrix).cholesky()


def test_singular_sparse_lu_propagates() -> None:
    """SuperLU's singular-matrix error surfaces unchanged."""
    singular = csr_matrix(np.array([[1.0, 2.0], [2.0, 4.0]]))
    with pytest.raises(RuntimeError, match="singular"):
        MatrixOperator(singular).factorize()
