"""Dense/sparse dispatch helpers used by the operator wrappers.

Every helper forwards to NumPy (dense ndarrays) or SciPy (sparse matrices and
arrays); nothing here computes a decomposition or a product itself.

Design notes:
    * Operands accepted by the arithmetic forwarding are NumPy ndarrays or
      SciPy sparse matrices/arrays; anything else is rejected by the callers.
    * A few queries (2-norm, positive definiteness, matrix exponential) have no
      sparse kernel in SciPy; they densify and emit SparseEfficiencyWarning once
      the matrix is large enough for that to matter.
"""

from __future__ import annotations

import operator
import warnings
from typing import TYPE_CHECKING, Any, Final, TypeAlias

import numpy as np
import scipy.linalg
from numpy.typing import NDArray
from scipy.sparse import SparseEfficiencyWarning, issparse, spmatrix
from scipy.sparse.linalg import norm as sparse_norm
from scipy.sparse.linalg import spsolve

from .errors import ErrorCode, InvalidOperatorError, raise_operand_type_error

if TYPE_CHECKING:
    from numpy.typing import DTypeLike


DenseMatrix: TypeAlias = NDArray[Any]
MatrixLike: TypeAlias = DenseMatrix | spmatrix

# Below this many rows densifying a sparse matrix is not worth a warning.
_DENSIFY_WARN_THRESHOLD: Final[int] = 350

NUMERIC_KINDS: Final[str] = "biufc"

_MATRIX_NDIM_ERROR = "matrix must be 2D; got ndim={ndim}"
_MATRIX_DTYPE_ERROR = "matrix must have a numeric dtype; got {dtype}"
_LINEAR_INDEX_ERROR = "linear index {index} out of bounds for matrix of size {size}"
_DENSIFY_WARNING = (
    "{operation} has no sparse kernel; densifying a sparse matrix of shape {shape}"
)


# =============================================================================
# Validation
# =============================================================================


def as_operator_matrix(matrix: object) -> MatrixLike:
    """
    Validate a matrix for wrapping, without copying it.

    Args:
        matrix: Dense array-like or SciPy sparse matrix/array.

    Raises:
        InvalidOperatorError: If the matrix is not 2D or not numeric.

    Returns:
        The sparse matrix itself, or ``np.asarray(matrix)`` (a no-op for ndarrays).
    """
    mat = matrix if issparse(matrix) else np.asarray(matrix)
    ndim = len(mat.shape)
    if ndim != 2:
        raise InvalidOperatorError(
            _MATRIX_NDIM_ERROR.format(ndim=ndim), code=ErrorCode.INVALID_OPERATOR
        )
    if np.dtype(mat.dtype).kind not in NUMERIC_KINDS:
        raise InvalidOperatorError(
            _MATRIX_DTYPE_ERROR.format(dtype=mat.dtype),
            code=ErrorCode.INVALID_OPERATOR,
        )
    return mat


def is_array_operand(x: object) -> bool:
    """Return True if x is a vector/matrix operand (ndarray or sparse)."""
    return isinstance(x, np.ndarray) or issparse(x)


def check_operand_dtype(operation: str, operand: Any, dtype: DTypeLike) -> None:
    """
    Require an operand's element type to match the operator's.

    Args:
        operation: Operation name used in the error message.
        operand: ndarray or sparse operand.
        dtype: Operator dtype.

    Raises:
        OperandTypeError: If the dtypes differ.
    """
    got = np.dtype(operand.dtype)
    expected = np.dtype(dtype)
    if got != expected:
        raise_operand_type_error(operation, expected=expected, got=got)


def _densify(matrix: MatrixLike, operation: str) -> DenseMatrix:
    if not issparse(matrix):
        return np.asarray(matrix)
    if matrix.shape[0] >= _DENSIFY_WARN_THRESHOLD:
        warnings.warn(
            _DENSIFY_WARNING.format(operation=operation, shape=matrix.shape),
            SparseEfficiencyWarning,
            stacklevel=3,
        )
    return np.asarray(matrix.toarray())


# =============================================================================
# Property queries
# =============================================================================


def is_real(matrix: MatrixLike) -> bool:
    """Return True if every entry of the matrix has zero imaginary part."""
    if not np.iscomplexobj(matrix):
        return True
    data = matrix.tocsr().data if issparse(matrix) else np.asarray(matrix)
    return not bool(np.any(data.imag))


def is_symmetric(matrix: MatrixLike) -> bool:
    """Return True if the matrix equals its transpose exactly."""
    rows, cols = matrix.shape
    if rows != cols:
        return False
    if issparse(matrix):
        csr = matrix.tocsr()
        return (csr != csr.T).nnz == 0
    return bool(scipy.linalg.issymmetric(np.asarray(matrix)))


def is_hermitian(matrix: MatrixLike) -> bool:
    """Return True if the matrix equals its conjugate transpose exactly."""
    rows, cols = matrix.shape
    if rows != cols:
        return False
    if issparse(matrix):
        csr = matrix.tocsr()
        return (csr != csr.conj().T).nnz == 0
    return bool(scipy.linalg.ishermitian(np.asarray(matrix)))


def is_positive_definite(matrix: MatrixLike) -> bool:
    """
    Return True if the matrix is Hermitian positive definite.

    Positive definiteness is decided the usual way: the matrix is Hermitian
    and a Cholesky factorization of it succeeds.

    Args:
        matrix: Dense or sparse matrix.

    Returns:
        True if Hermitian and Cholesky succeeds.
    """
    if not is_hermitian(matrix):
        return False
    dense = _densify(matrix, "is_positive_definite")
    try:
        scipy.linalg.cho_factor(dense)
    except np.linalg.LinAlgError:
        return False
    return True


def operator_norm(matrix: MatrixLike, p: float = 2) -> float:
    """
    Compute the operator norm induced by the vector p-norm.

    Args:
        matrix: Dense or sparse matrix.
        p: Norm order; 1, 2 or inf.

    Returns:
        The operator norm as a float.
    """
    if issparse(matrix) and p != 2:
        return float(sparse_norm(matrix, ord=p))
    return float(np.linalg.norm(_densify(matrix, "operator_norm"), ord=p))


def linear_index(matrix: MatrixLike, index: int) -> tuple[int, int]:
    """
    Convert a row-major linear index into a (row, col) pair.

    Args:
        matrix: Dense or sparse matrix.
        index: Linear index; negative values count from the end.

    Raises:
        IndexError: If the index is out of bounds.

    Returns:
        The equivalent (row, col) index.
    """
    idx = operator.index(index)
    rows, cols = matrix.shape
    size = rows * cols
    if idx < 0:
        idx += size
    if not 0 <= idx < size:
        raise IndexError(_LINEAR_INDEX_ERROR.format(index=index, size=size))
    row, col = divmod(idx, cols)
    return row, col


# =============================================================================
# Conversions
# =============================================================================


def to_dense(matrix: MatrixLike) -> DenseMatrix:
    """Return a dense copy of the matrix."""
    if issparse(matrix):
        return np.asarray(matrix.toarray())
    return np.array(matrix, copy=True)


def as_dense_rhs(b: Any) -> Any:
    """Return b as a dense right-hand side (sparse inputs are expanded)."""
    if issparse(b):
        return np.asarray(b.toarray())
    return b


def expm(matrix: MatrixLike) -> DenseMatrix:
    """Matrix exponential computed on the dense form."""
    return scipy.linalg.expm(_densify(matrix, "expm"))


# =============================================================================
# Products and solves
# =============================================================================


def matmul_into(out: DenseMatrix, matrix: MatrixLike, b: Any) -> DenseMatrix:
    """
    Compute ``out = matrix @ b`` in place.

    Args:
        out: Dense output array (must not alias b).
        matrix: Dense or sparse matrix.
        b: Dense or sparse vector/matrix.

    Returns:
        out.
    """
    if issparse(matrix) or issparse(b):
        np.copyto(out, as_dense_rhs(matrix @ b))
        return out
    np.matmul(matrix, b, out=out)
    return out


def scale_into(out: DenseMatrix, alpha: Any, b: Any) -> DenseMatrix:
    """Compute ``out = alpha * b`` in place."""
    if issparse(b):
        np.copyto(out, np.asarray((b * alpha).toarray()))
        return out
    np.multiply(alpha, b, out=out)
    return out


def scale_inplace(b: Any, alpha: Any) -> Any:
    """
    Scale b by alpha in place.

    CSR, CSC, COO, BSR and DIA operands are scaled through their ``data``
    array. LIL keeps per-row value lists and DOK a key/value map; both are
    scaled entry by entry.

    Args:
        b: Dense or sparse operand.
        alpha: Scalar factor.

    Returns:
        b.
    """
    if not issparse(b):
        np.multiply(b, alpha, out=b)
        return b
    if b.format == "lil":
        for row in b.data:
            row[:] = [value * alpha for value in row]
    elif b.format == "dok":
        # DOK drops entries assigned zero, so iterate over a snapshot.
        for key, value in list(b.items()):
            b[key] = value * alpha
    else:
        b.data *= alpha
    return b


def axpy_into(alpha: Any, x: Any, y: DenseMatrix) -> DenseMatrix:
    """Accumulate ``y += alpha * x`` in place."""
    scaled = np.asarray((x * alpha).toarray()) if issparse(x) else alpha * x
    np.add(y, scaled, out=y)
    return y


def solve(matrix: MatrixLike, b: Any) -> Any:
    """
    Solve ``matrix @ x = b`` (least squares when the matrix is not square).

    Args:
        matrix: Dense or sparse matrix.
        b: Right-hand side vector(s).

    Returns:
        The solution x.
    """
    rows, cols = matrix.shape
    if issparse(matrix) and rows == cols:
        return spsolve(matrix.tocsc(), b)
    dense = _densify(matrix, "left_divide")
    b_dense = as_dense_rhs(b)
    if rows == cols:
        return scipy.linalg.solve(dense, b_dense)
    return scipy.linalg.lstsq(dense, b_dense)[0]


def right_solve(matrix: MatrixLike, b: Any) -> Any:
    """Solve ``x @ matrix = b``, i.e. ``b @ inv(matrix)``."""
    return solve(matrix.T, as_dense_rhs(b).T).T
