"""Time-dependent linear operators for differential-equation solvers.

A solver treats each operator here as a callable linear map whose
coefficients depend on (state, parameters, time):

- :class:`ScalarOperator` wraps a number,
- :class:`MatrixOperator` wraps a dense ndarray or a SciPy sparse matrix,
- :class:`FactorizedMatrixOperator` wraps a factorization of a matrix and is
  always constant.

Coefficient refresh is explicit: ``update_coefficients(u, p, t)`` runs the
operator's update rule. Applying an operator (``op(u, p, t)`` or
``op(du, u, p, t)``) always refreshes first, so the result uses the
coefficients for the given (u, p, t).

Update rules:
    ScalarOperator:  update_func(old_value, u, p, t) -> new_value
    MatrixOperator:  update_func(A, u, p, t) -> None   (mutates A in place)

An operator built without an update rule holds :data:`DEFAULT_UPDATE_FUNC`
and reports ``is_constant() == True``. The check is by identity, so a user
rule that happens to do nothing still counts as time-dependent.

Arithmetic is forwarded to NumPy/SciPy. Vector/matrix operands must be
ndarrays or sparse matrices whose dtype equals the operator's dtype.

Concurrency:
    Operators hold mutable state and the wrapped matrix may be aliased by the
    caller. Nothing here locks; callers sharing an operator across threads
    must serialize access themselves.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, ClassVar, Final, NoReturn, Self, TypeAlias

import numpy as np
from scipy.sparse import issparse
from scipy.sparse.linalg import LinearOperator

from . import _linalg, factorizations
from .errors import ErrorCode, InvalidOperatorError, raise_unsupported_operation

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ._linalg import MatrixLike
    from .factorizations import Factorization, FactorizationFunc


UpdateFunc: TypeAlias = Callable[[Any, Any, Any, Any], Any]

_CALL_ARITY_ERROR = (
    "{name} expects (u, p, t) or (du, u, p, t); got {count} positional arguments"
)
_SCALAR_NDIM_ERROR = "ScalarOperator value must be a scalar; got shape {shape}"
_SCALAR_DTYPE_ERROR = "ScalarOperator value must be numeric; got dtype {dtype}"
_SCALAR_INEXACT_ERROR = "ScalarOperator cannot store {value!r} exactly as {dtype}"
_IMMUTABLE_ERROR = "{name} is immutable; cannot set attribute {attr!r}"


def _as_numeric_scalar(value: Any) -> NDArray[Any]:
    arr = np.asarray(value)
    if arr.ndim != 0:
        raise InvalidOperatorError(
            _SCALAR_NDIM_ERROR.format(shape=arr.shape),
            code=ErrorCode.INVALID_OPERATOR,
        )
    if arr.dtype.kind not in _linalg.NUMERIC_KINDS:
        raise InvalidOperatorError(
            _SCALAR_DTYPE_ERROR.format(dtype=arr.dtype),
            code=ErrorCode.INVALID_OPERATOR,
        )
    return arr


# =============================================================================
# Default update rule
# =============================================================================


class _DefaultUpdateFunc:
    """Update rule of constant operators: returns the current value unchanged."""

    __slots__ = ()

    def __call__(self, value: Any, u: Any, p: Any, t: Any) -> Any:  # noqa: ARG002
        return value

    def __repr__(self) -> str:
        return "DEFAULT_UPDATE_FUNC"

    def __reduce__(self) -> str:
        return "DEFAULT_UPDATE_FUNC"


DEFAULT_UPDATE_FUNC: Final[UpdateFunc] = _DefaultUpdateFunc()


# =============================================================================
# Capability set
# =============================================================================


class DiffEqLinearOperator:
    """Common interface of time-dependent linear operators.

    Each member of the capability set is defined here and raises
    UnsupportedOperationError; subclasses override the subset they support.
    ``__array_ufunc__ = None`` makes NumPy defer ``ndarray <op> operator`` to
    the operator's reflected methods.
    """

    __slots__ = ()
    __array_ufunc__ = None

    _SUPPORTED: ClassVar[str] = "nothing"

    def _unsupported(self, operation: str) -> NoReturn:
        raise_unsupported_operation(operation, self, supported=self._SUPPORTED)

    # -- coefficient refresh ------------------------------------------------

    def update_coefficients(self, u: Any, p: Any, t: Any) -> Self:  # noqa: ARG002
        """Refresh the operator's coefficients for (u, p, t); returns self."""
        self._unsupported("update_coefficients")

    def is_constant(self) -> bool:
        """Return True if update_coefficients never changes the operator."""
        self._unsupported("is_constant")

    def set_value(self, value: Any) -> Self:  # noqa: ARG002
        """Replace the operator's value, bypassing the update rule."""
        self._unsupported("set_value")

    # -- application --------------------------------------------------------

    def apply(self, u: Any, p: Any, t: Any) -> Any:  # noqa: ARG002
        """Refresh coefficients, then return the operator applied to u."""
        self._unsupported("apply")

    def apply_into(self, du: Any, u: Any, p: Any, t: Any) -> Any:  # noqa: ARG002
        """Refresh coefficients, then write the operator applied to u into du."""
        self._unsupported("apply_into")

    def __call__(self, *args: Any) -> Any:
        """
        Apply the operator: ``op(u, p, t)`` or ``op(du, u, p, t)``.

        Args:
            *args: Either (u, p, t) or (du, u, p, t).

        Raises:
            TypeError: If called with any other number of arguments.

        Returns:
            The applied result (out-of-place form) or du (in-place form).
        """
        if len(args) == 3:
            return self.apply(*args)
        if len(args) == 4:
            return self.apply_into(*args)
        raise TypeError(
            _CALL_ARITY_ERROR.format(name=type(self).__name__, count=len(args))
        )

    # -- shape --------------------------------------------------------------

    @property
    def shape(self) -> tuple[int, ...]:
        """Shape of the operator."""
        self._unsupported("shape")

    @property
    def ndim(self) -> int:
        """Number of dimensions of the operator."""
        return len(self.shape)

    def size(self, dim: int | None = None) -> tuple[int, ...] | int:
        """Return the whole shape, or the extent along ``dim``."""
        shape = self.shape
        if dim is None:
            return shape
        return shape[dim]

    # -- linear algebra -----------------------------------------------------

    def mul(self, out: Any, b: Any) -> Any:  # noqa: ARG002
        """Compute ``out = op * b`` in place."""
        self._unsupported("mul")

    def ldiv(self, out: Any, b: Any) -> Any:  # noqa: ARG002
        """Compute ``out = op \\ b`` in place."""
        self._unsupported("ldiv")

    def left_divide(self, b: Any) -> Any:  # noqa: ARG002
        """Return ``op \\ b``."""
        self._unsupported("left_divide")

    def right_divide(self, b: Any) -> Any:  # noqa: ARG002
        """Return ``b / op``."""
        self._unsupported("right_divide")

    def to_dense(self) -> NDArray[Any]:
        """Return the operator as a dense ndarray."""
        self._unsupported("to_dense")

    def as_matrix(self) -> Any:
        """Return the operator in matrix form."""
        self._unsupported("as_matrix")

    def __matmul__(self, other: Any) -> Any:  # noqa: ARG002
        self._unsupported("matrix multiplication (@)")

    def __rmatmul__(self, other: Any) -> Any:  # noqa: ARG002
        self._unsupported("matrix multiplication (@)")

    def __mul__(self, other: Any) -> Any:  # noqa: ARG002
        self._unsupported("multiplication (*)")

    def __rmul__(self, other: Any) -> Any:  # noqa: ARG002
        self._unsupported("multiplication (*)")


# =============================================================================
# ScalarOperator
# =============================================================================


class ScalarOperator(DiffEqLinearOperator):
    """A time-dependent scalar (scaling) operator.

    The update rule is called by :meth:`update_coefficients` with signature
    ``update_func(old_value, u, p, t) -> new_value``. Use :meth:`set_value`
    to bypass the rule and replace the value directly.

    The value's dtype is fixed at construction; later values must be
    scalars that convert to it exactly (``3.0`` fits an int operator, ``2.5``
    does not).

    Attributes:
        update_func: The update rule.
    """

    __slots__ = ("_dtype", "_value", "update_func")

    _SUPPORTED: ClassVar[str] = (
        "update_coefficients, set_value, application, scaling (*, /, lmul, rmul, "
        "mul, axpy) and abs"
    )

    def __init__(
        self, value: Any, *, update_func: UpdateFunc = DEFAULT_UPDATE_FUNC
    ) -> None:
        """
        Initialize a ScalarOperator.

        Args:
            value: Initial numeric value.
            update_func: Update rule; defaults to the constant rule.

        Raises:
            InvalidOperatorError: If value is not a numeric scalar.
        """
        arr = _as_numeric_scalar(value)
        self._dtype = arr.dtype
        self._value = arr[()]
        self.update_func = update_func

    def __repr__(self) -> str:
        return f"ScalarOperator({self._value!r}, update_func={self.update_func!r})"

    def _coerce(self, value: Any) -> Any:
        arr = _as_numeric_scalar(value)
        if arr.dtype.kind == "c" and self._dtype.kind != "c":
            if arr.imag != 0:
                raise InvalidOperatorError(
                    _SCALAR_INEXACT_ERROR.format(value=value, dtype=self._dtype),
                    code=ErrorCode.INVALID_OPERATOR,
                )
            arr = arr.real
        with np.errstate(invalid="ignore", over="ignore"):
            converted = arr.astype(self._dtype, casting="unsafe")[()]
        original = arr[()]
        if converted != original and not (np.isnan(converted) and np.isnan(original)):
            raise InvalidOperatorError(
                _SCALAR_INEXACT_ERROR.format(value=value, dtype=self._dtype),
                code=ErrorCode.INVALID_OPERATOR,
            )
        return converted

    @property
    def value(self) -> Any:
        """Current scalar value."""
        return self._value

    @value.setter
    def value(self, value: Any) -> None:
        self._value = self._coerce(value)

    @property
    def dtype(self) -> np.dtype[Any]:
        """Numeric type of the value."""
        return self._dtype

    @property
    def shape(self) -> tuple[int, ...]:
        return ()

    def update_coefficients(self, u: Any, p: Any, t: Any) -> Self:
        self._value = self._coerce(self.update_func(self._value, u, p, t))
        return self

    def set_value(self, value: Any) -> Self:
        self._value = self._coerce(value)
        return self

    def is_constant(self) -> bool:
        return self.update_func is DEFAULT_UPDATE_FUNC

    # -- scaling ------------------------------------------------------------

    def _checked(self, operation: str, operand: Any) -> Any:
        _linalg.check_operand_dtype(operation, operand, self._dtype)
        return operand

    def __mul__(self, other: Any) -> Any:
        if not _linalg.is_array_operand(other):
            return NotImplemented
        return self._checked("*", other) * self._value

    def __rmul__(self, other: Any) -> Any:
        if not _linalg.is_array_operand(other):
            return NotImplemented
        return self._checked("*", other) * self._value

    def __truediv__(self, other: Any) -> Any:
        if not _linalg.is_array_operand(other):
            return NotImplemented
        return self._value / self._checked("/", other)

    def __rtruediv__(self, other: Any) -> Any:
        if not _linalg.is_array_operand(other):
            return NotImplemented
        return self._checked("/", other) / self._value

    def left_divide(self, b: Any) -> Any:
        """Return ``value \\ b``, i.e. ``b / value``."""
        return self._checked("left_divide", b) / self._value

    def lmul(self, b: Any) -> Any:
        """Scale b in place from the left, ``b = value * b``; returns b."""
        return _linalg.scale_inplace(self._checked("lmul", b), self._value)

    def rmul(self, b: Any) -> Any:
        """Scale b in place from the right, ``b = b * value``; returns b."""
        return _linalg.scale_inplace(self._checked("rmul", b), self._value)

    def mul(self, out: Any, b: Any) -> Any:
        """Compute ``out = value * b`` in place; returns out."""
        self._checked("mul", out)
        return _linalg.scale_into(out, self._value, self._checked("mul", b))

    def axpy(self, x: Any, y: Any) -> Any:
        """Accumulate ``y += value * x`` in place; returns y."""
        self._checked("axpy", x)
        return _linalg.axpy_into(self._value, x, self._checked("axpy", y))

    def __abs__(self) -> Any:
        return abs(self._value)

    def __float__(self) -> float:
        return float(self._value)

    def __complex__(self) -> complex:
        return complex(self._value)

    # -- application --------------------------------------------------------

    def apply(self, u: Any, p: Any, t: Any) -> Any:
        self.update_coefficients(u, p, t)
        return self._value * u

    def apply_into(self, du: Any, u: Any, p: Any, t: Any) -> Any:
        self.update_coefficients(u, p, t)
        return _linalg.scale_into(du, self._value, u)


# =============================================================================
# MatrixOperator
# =============================================================================


def _factorization_method(
    kernel: FactorizationFunc, *, overwrite: bool
) -> Callable[..., FactorizedMatrixOperator]:
    suffix = "_inplace" if overwrite else ""

    def method(self: MatrixOperator, **kwargs: Any) -> FactorizedMatrixOperator:
        return FactorizedMatrixOperator(
            kernel(self.as_matrix(), overwrite=overwrite, **kwargs)
        )

    method.__name__ = f"{kernel.__name__}{suffix}"
    method.__qualname__ = f"MatrixOperator.{method.__name__}"
    method.__doc__ = (
        f"Factorize the wrapped matrix with ``factorizations.{kernel.__name__}``"
        + (", allowing SciPy to overwrite its storage" if overwrite else "")
        + ".\n\nKeyword arguments are forwarded to the SciPy routine."
    )
    return method


class MatrixOperator(DiffEqLinearOperator):
    """A time-dependent linear operator given by a matrix.

    The update rule is called by :meth:`update_coefficients` with signature
    ``update_func(A, u, p, t)`` and must modify ``A`` in place. Use
    :meth:`set_value` to bypass the rule and swap in a different matrix.

    The matrix is held by reference (dense ndarray or SciPy sparse matrix);
    the caller may keep aliases to it and will observe in-place updates.

    Attributes:
        update_func: The update rule.
    """

    __slots__ = ("_matrix", "update_func")

    _SUPPORTED: ClassVar[str] = (
        "update_coefficients, set_value, application, @, left/right division, "
        "mul, ldiv, property queries, indexing and factorizations"
    )

    def __init__(
        self, matrix: Any, *, update_func: UpdateFunc = DEFAULT_UPDATE_FUNC
    ) -> None:
        """
        Initialize a MatrixOperator.

        Args:
            matrix: 2D ndarray (or array-like) or SciPy sparse matrix.
            update_func: Update rule; defaults to the constant rule.
        """
        self._matrix: MatrixLike = _linalg.as_operator_matrix(matrix)
        self.update_func = update_func

    def __repr__(self) -> str:
        kind = "sparse" if issparse(self._matrix) else "dense"
        return (
            f"MatrixOperator(<{kind} {self.shape[0]}x{self.shape[1]} {self.dtype}>, "
            f"update_func={self.update_func!r})"
        )

    @property
    def matrix(self) -> MatrixLike:
        """The wrapped matrix (not a copy)."""
        return self._matrix

    @property
    def dtype(self) -> np.dtype[Any]:
        """Element type of the wrapped matrix."""
        return np.dtype(self._matrix.dtype)

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self._matrix.shape)

    def update_coefficients(self, u: Any, p: Any, t: Any) -> Self:
        self.update_func(self._matrix, u, p, t)
        return self

    def set_value(self, value: Any) -> Self:
        self._matrix = _linalg.as_operator_matrix(value)
        return self

    def is_constant(self) -> bool:
        return self.update_func is DEFAULT_UPDATE_FUNC

    # -- property forwarding ------------------------------------------------

    def is_real(self) -> bool:
        """True if every entry has zero imaginary part."""
        return _linalg.is_real(self._matrix)

    def is_symmetric(self) -> bool:
        """True if the matrix equals its transpose."""
        return _linalg.is_symmetric(self._matrix)

    def is_hermitian(self) -> bool:
        """True if the matrix equals its conjugate transpose."""
        return _linalg.is_hermitian(self._matrix)

    def is_positive_definite(self) -> bool:
        """True if the matrix is Hermitian positive definite."""
        return _linalg.is_positive_definite(self._matrix)

    def operator_norm(self, p: float = 2) -> float:
        """Operator norm induced by the vector p-norm (p in 1, 2, inf)."""
        return _linalg.operator_norm(self._matrix, p)

    def _key(self, key: Any) -> Any:
        if isinstance(key, (int, np.integer)) and not isinstance(key, bool):
            return _linalg.linear_index(self._matrix, key)
        return key

    def __getitem__(self, key: Any) -> Any:
        return self._matrix[self._key(key)]

    def __setitem__(self, key: Any, value: Any) -> None:
        self._matrix[self._key(key)] = value

    def as_matrix(self) -> MatrixLike:
        return self._matrix

    def to_dense(self) -> NDArray[Any]:
        return _linalg.to_dense(self._matrix)

    def __array__(
        self,
        dtype: Any = None,
        copy: bool | None = None,  # noqa: ARG002
    ) -> NDArray[Any]:
        dense = self.to_dense()
        if dtype is None:
            return dense
        return dense.astype(dtype, copy=False)

    def expm(self) -> NDArray[Any]:
        """Matrix exponential, computed on the dense form."""
        return _linalg.expm(self._matrix)

    def as_linear_operator(self) -> LinearOperator:
        """
        Expose the operator as a SciPy LinearOperator.

        Products read the wrapped matrix at call time, so later in-place
        updates and set_value calls are reflected.

        Returns:
            A LinearOperator with the current shape and dtype.
        """

        def matvec(v: NDArray[Any]) -> NDArray[Any]:
            return np.asarray(self._matrix @ v)

        def matmat(m: NDArray[Any]) -> NDArray[Any]:
            return np.asarray(self._matrix @ m)

        def rmatvec(v: NDArray[Any]) -> NDArray[Any]:
            return np.asarray(self._matrix.conj().T @ v)

        return LinearOperator(
            shape=self._matrix.shape,
            dtype=self._matrix.dtype,
            matvec=matvec,
            matmat=matmat,
            rmatvec=rmatvec,
        )

    # -- arithmetic forwarding ----------------------------------------------

    def _checked(self, operation: str, operand: Any) -> Any:
        _linalg.check_operand_dtype(operation, operand, self.dtype)
        return operand

    def __matmul__(self, other: Any) -> Any:
        if not _linalg.is_array_operand(other):
            return NotImplemented
        return self._matrix @ self._checked("@", other)

    def __rmatmul__(self, other: Any) -> Any:
        if not _linalg.is_array_operand(other):
            return NotImplemented
        return self._checked("@", other) @ self._matrix

    def left_divide(self, b: Any) -> Any:
        """Return x solving ``A @ x = b`` (least squares if A is not square)."""
        return _linalg.solve(self._matrix, self._checked("left_divide", b))

    def right_divide(self, b: Any) -> Any:
        """Return x solving ``x @ A = b``."""
        return _linalg.right_solve(self._matrix, self._checked("right_divide", b))

    def mul(self, out: Any, b: Any) -> Any:
        """Compute ``out = A @ b`` in place; returns out."""
        return _linalg.matmul_into(out, self._matrix, self._checked("mul", b))

    def ldiv(self, out: Any, b: Any) -> Any:
        """Compute ``out = A \\ b`` in place; returns out."""
        np.copyto(out, self.left_divide(b))
        return out

    # -- application --------------------------------------------------------

    def apply(self, u: Any, p: Any, t: Any) -> Any:
        self.update_coefficients(u, p, t)
        return self._matrix @ u

    def apply_into(self, du: Any, u: Any, p: Any, t: Any) -> Any:
        self.update_coefficients(u, p, t)
        return _linalg.matmul_into(du, self._matrix, u)

    # -- factorizations -----------------------------------------------------

    def factorize(self) -> FactorizedMatrixOperator:
        """Factorize with a method chosen from the matrix structure."""
        return FactorizedMatrixOperator(factorizations.factorize(self._matrix))

    lu = _factorization_method(factorizations.lu, overwrite=False)
    lu_inplace = _factorization_method(factorizations.lu, overwrite=True)
    qr = _factorization_method(factorizations.qr, overwrite=False)
    qr_inplace = _factorization_method(factorizations.qr, overwrite=True)
    cholesky = _factorization_method(factorizations.cholesky, overwrite=False)
    cholesky_inplace = _factorization_method(factorizations.cholesky, overwrite=True)
    ldlt = _factorization_method(factorizations.ldlt, overwrite=False)
    ldlt_inplace = _factorization_method(factorizations.ldlt, overwrite=True)
    bunch_kaufman = _factorization_method(factorizations.bunch_kaufman, overwrite=False)
    bunch_kaufman_inplace = _factorization_method(
        factorizations.bunch_kaufman, overwrite=True
    )
    lq = _factorization_method(factorizations.lq, overwrite=False)
    lq_inplace = _factorization_method(factorizations.lq, overwrite=True)
    svd = _factorization_method(factorizations.svd, overwrite=False)
    svd_inplace = _factorization_method(factorizations.svd, overwrite=True)


# =============================================================================
# FactorizedMatrixOperator
# =============================================================================


class FactorizedMatrixOperator(DiffEqLinearOperator):
    """A constant operator stored as a factorization.

    Built by :meth:`MatrixOperator.factorize` and the named factorization
    methods. Supports left division (``left_divide``, ``ldiv``), shape
    queries and dense reconstruction; multiplication and application are
    unsupported. Recreate it from the source operator when the matrix changes.
    """

    __slots__ = ("_factorization",)

    _SUPPORTED: ClassVar[str] = (
        "left division (left_divide, ldiv), shape queries and dense reconstruction"
    )

    def __init__(self, factorization: Factorization) -> None:
        """
        Initialize a FactorizedMatrixOperator.

        Args:
            factorization: Handle from diffeq_operators.factorizations.
        """
        object.__setattr__(self, "_factorization", factorization)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(
            _IMMUTABLE_ERROR.format(name=type(self).__name__, attr=name)
        )

    def __repr__(self) -> str:
        return f"FactorizedMatrixOperator({type(self._factorization).__name__})"

    @property
    def factorization(self) -> Factorization:
        """The wrapped factorization handle."""
        return self._factorization

    @property
    def dtype(self) -> np.dtype[Any]:
        return np.dtype(self._factorization.dtype)

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self._factorization.shape)

    def is_constant(self) -> bool:
        return True

    def update_coefficients(self, u: Any, p: Any, t: Any) -> Self:  # noqa: ARG002
        return self

    def left_divide(self, b: Any) -> Any:
        return self._factorization.solve(_linalg.as_dense_rhs(b))

    def ldiv(self, out: Any, b: Any) -> Any:
        np.copyto(out, self.left_divide(b))
        return out

    def to_dense(self) -> NDArray[Any]:
        return self._factorization.to_dense()

    def as_matrix(self) -> NDArray[Any]:
        return self.to_dense()

    def __array__(
        self,
        dtype: Any = None,
        copy: bool | None = None,  # noqa: ARG002
    ) -> NDArray[Any]:
        dense = self.to_dense()
        if dtype is None:
            return dense
        return dense.astype(dtype, copy=False)
