"""Factorization handles and named factorization entry points.

SciPy returns most factorizations as raw tuples (``lu_factor`` gives
``(lu, piv)``, ``cho_factor`` gives ``(c, lower)``, ...). This module wraps
each result in a small frozen handle exposing one contract:

- ``shape`` / ``dtype`` of the factorized matrix,
- ``solve(b)``: the solution of ``A x = b``,
- ``to_dense()``: the matrix reconstructed from its factors.

All decompositions and solves are delegated to scipy.linalg and
scipy.sparse.linalg; singular or indefinite inputs raise whatever SciPy
raises (typically ``numpy.linalg.LinAlgError`` or ``ValueError``).

Entry points (``lu``, ``qr``, ``cholesky``, ``ldlt``, ``bunch_kaufman``,
``lq``, ``svd``) take the matrix, then any extra keyword arguments for
the SciPy routine. ``overwrite=True`` lets SciPy reuse the input storage
(the in-place variants).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final, Protocol, TypeAlias

import numpy as np
import scipy.linalg
from scipy.sparse import csc_matrix, issparse
from scipy.sparse.linalg import SuperLU, splu

from . import _linalg
from .errors import raise_unsupported_operation

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from ._linalg import MatrixLike


_SPARSE_SUPPORTED = "lu and factorize"


class Factorization(Protocol):
    """Minimal interface of a factorization handle."""

    @property
    def shape(self) -> tuple[int, int]:
        """Return the shape of the factorized matrix."""
        ...

    @property
    def dtype(self) -> np.dtype[Any]:
        """Return the element type of the factors."""
        ...

    def solve(self, b: NDArray[Any]) -> NDArray[Any]:
        """Return x such that A @ x = b."""
        ...

    def to_dense(self) -> NDArray[Any]:
        """Reconstruct A from its factors."""
        ...


FactorizationFunc: TypeAlias = Callable[..., Factorization]


# =============================================================================
# Handles
# =============================================================================


@dataclass(frozen=True, slots=True, eq=False)
class LUFactorization:
    """Dense LU with partial pivoting, ``A = P @ L @ U``.

    Attributes:
        lu: Packed L (strict lower part, unit diagonal) and U factors.
        piv: LAPACK row interchanges; row i was swapped with row piv[i].
    """

    lu: NDArray[Any]
    piv: NDArray[np.integer]

    @property
    def shape(self) -> tuple[int, int]:
        return self.lu.shape

    @property
    def dtype(self) -> np.dtype[Any]:
        return self.lu.dtype

    def solve(self, b: NDArray[Any]) -> NDArray[Any]:
        return scipy.linalg.lu_solve((self.lu, self.piv), b)

    def to_dense(self) -> NDArray[Any]:
        rows, cols = self.lu.shape
        k = min(rows, cols)
        lower = np.tril(self.lu[:, :k], k=-1) + np.eye(rows, k, dtype=self.lu.dtype)
        upper = np.triu(self.lu[:k, :])

        perm = np.arange(rows)
        for i, p in enumerate(self.piv):
            perm[i], perm[p] = perm[p], perm[i]

        out = np.empty((rows, cols), dtype=self.lu.dtype)
        out[perm] = lower @ upper
        return out


@dataclass(frozen=True, slots=True, eq=False)
class SparseLUFactorization:
    """Sparse LU computed by SuperLU, ``Pr @ A @ Pc = L @ U``."""

    superlu: SuperLU

    @property
    def shape(self) -> tuple[int, int]:
        return self.superlu.shape

    @property
    def dtype(self) -> np.dtype[Any]:
        return self.superlu.U.dtype

    def solve(self, b: NDArray[Any]) -> NDArray[Any]:
        return self.superlu.solve(np.asarray(_linalg.as_dense_rhs(b)))

    def to_dense(self) -> NDArray[Any]:
        n = self.superlu.shape[0]
        ones = np.ones(n)
        rng = np.arange(n)
        pr = csc_matrix((ones, (self.superlu.perm_r, rng)), shape=(n, n))
        pc = csc_matrix((ones, (rng, self.superlu.perm_c)), shape=(n, n))
        return np.asarray((pr.T @ (self.superlu.L @ self.superlu.U) @ pc.T).toarray())


@dataclass(frozen=True, slots=True, eq=False)
class QRFactorization:
    """Economic QR, ``A[:, p] = Q @ R`` (p is None without pivoting).

    Tall systems are solved in the least-squares sense.
    """

    q: NDArray[Any]
    r: NDArray[Any]
    p: NDArray[np.integer] | None = None

    @property
    def shape(self) -> tuple[int, int]:
        return (self.q.shape[0], self.r.shape[1])

    @property
    def dtype(self) -> np.dtype[Any]:
        return self.r.dtype

    def solve(self, b: NDArray[Any]) -> NDArray[Any]:
        z = scipy.linalg.solve_triangular(self.r, self.q.conj().T @ b)
        if self.p is None:
            return z
        x = np.empty_like(z)
        x[self.p] = z
        return x

    def to_dense(self) -> NDArray[Any]:
        qr_prod = self.q @ self.r
        if self.p is None:
            return qr_prod
        out = np.empty_like(qr_prod)
        out[:, self.p] = qr_prod
        return out


@dataclass(frozen=True, slots=True, eq=False)
class CholeskyFactorization:
    """Cholesky as returned by ``cho_factor``.

    Only the triangle selected by ``lower`` holds the factor; the rest of
    ``c`` is unspecified.
    """

    c: NDArray[Any]
    lower: bool

    @property
    def shape(self) -> tuple[int, int]:
        return self.c.shape

    @property
    def dtype(self) -> np.dtype[Any]:
        return self.c.dtype

    def solve(self, b: NDArray[Any]) -> NDArray[Any]:
        return scipy.linalg.cho_solve((self.c, self.lower), b)

    def to_dense(self) -> NDArray[Any]:
        if self.lower:
            tri = np.tril(self.c)
            return tri @ tri.conj().T
        tri = np.triu(self.c)
        return tri.conj().T @ tri


@dataclass(frozen=True, slots=True, eq=False)
class LDLFactorization:
    """Symmetric-indefinite (Bunch-Kaufman) factorization from ``scipy.linalg.ldl``.

    ``A = lu @ d @ lu^H`` (``lu^T`` when not hermitian), where ``d`` is block
    diagonal with 1x1/2x2 blocks and ``lu[perm]`` is triangular.
    """

    lu: NDArray[Any]
    d: NDArray[Any]
    perm: NDArray[np.integer]
    lower: bool
    hermitian: bool

    @property
    def shape(self) -> tuple[int, int]:
        return self.lu.shape

    @property
    def dtype(self) -> np.dtype[Any]:
        return self.lu.dtype

    def solve(self, b: NDArray[Any]) -> NDArray[Any]:
        tri = self.lu[self.perm]
        w = scipy.linalg.solve_triangular(
            tri, np.asarray(b)[self.perm], lower=self.lower
        )
        v = scipy.linalg.solve(self.d, w)
        trans = "C" if self.hermitian else "T"
        u = scipy.linalg.solve_triangular(tri, v, lower=self.lower, trans=trans)
        x = np.empty_like(u)
        x[self.perm] = u
        return x

    def to_dense(self) -> NDArray[Any]:
        right = self.lu.conj().T if self.hermitian else self.lu.T
        return self.lu @ self.d @ right


@dataclass(frozen=True, slots=True, eq=False)
class LQFactorization:
    """LQ, ``A = L @ Q``, obtained from the QR factorization of ``A^H``.

    Wide systems are solved for the minimum-norm solution.
    """

    l: NDArray[Any]  # noqa: E741
    q: NDArray[Any]

    @property
    def shape(self) -> tuple[int, int]:
        return (self.l.shape[0], self.q.shape[1])

    @property
    def dtype(self) -> np.dtype[Any]:
        return self.l.dtype

    def solve(self, b: NDArray[Any]) -> NDArray[Any]:
        y = scipy.linalg.solve_triangular(self.l, b, lower=True)
        return self.q.conj().T @ y

    def to_dense(self) -> NDArray[Any]:
        return self.l @ self.q


@dataclass(frozen=True, slots=True, eq=False)
class SVDFactorization:
    """Thin SVD, ``A = U @ diag(s) @ Vh``.

    ``solve`` applies the pseudo-inverse, dropping singular values not above
    ``eps * s[0]``.
    """

    u: NDArray[Any]
    s: NDArray[np.floating]
    vh: NDArray[Any]

    @property
    def shape(self) -> tuple[int, int]:
        return (self.u.shape[0], self.vh.shape[1])

    @property
    def dtype(self) -> np.dtype[Any]:
        return self.u.dtype

    def rank(self) -> int:
        """Number of singular values kept by ``solve``."""
        if self.s.size == 0:
            return 0
        tol = np.finfo(self.s.dtype).eps * self.s[0]
        return int(np.count_nonzero(self.s > tol))

    def solve(self, b: NDArray[Any]) -> NDArray[Any]:
        k = self.rank()
        coeffs = self.u[:, :k].conj().T @ b
        s_k = self.s[:k].reshape((-1,) + (1,) * (coeffs.ndim - 1))
        return self.vh[:k].conj().T @ (coeffs / s_k)

    def to_dense(self) -> NDArray[Any]:
        return (self.u * self.s) @ self.vh


# =============================================================================
# Entry points
# =============================================================================


def _dense_input(name: str, a: MatrixLike) -> NDArray[Any]:
    if issparse(a):
        raise_unsupported_operation(
            f"{name} on a sparse matrix", a, supported=_SPARSE_SUPPORTED
        )
    return np.asarray(a)


def lu(a: MatrixLike, *, overwrite: bool = False, **kwargs: Any) -> Factorization:
    """
    LU factorization with partial pivoting.

    Sparse matrices are factorized with SuperLU (``splu``); ``overwrite`` has
    no effect there.

    Args:
        a: Dense or sparse square matrix.
        overwrite: Allow SciPy to overwrite ``a`` (dense only).
        **kwargs: Extra keyword arguments for ``lu_factor`` / ``splu``.

    Returns:
        LUFactorization or SparseLUFactorization.
    """
    if issparse(a):
        return SparseLUFactorization(splu(a.tocsc(), **kwargs))
    lu_, piv = scipy.linalg.lu_factor(np.asarray(a), overwrite_a=overwrite, **kwargs)
    return LUFactorization(lu_, piv)


def qr(a: MatrixLike, *, overwrite: bool = False, **kwargs: Any) -> QRFactorization:
    """
    Economic QR factorization; pass ``pivoting=True`` for column pivoting.

    Args:
        a: Dense matrix; solving needs at least as many rows as columns.
        overwrite: Allow SciPy to overwrite ``a``.
        **kwargs: Extra keyword arguments for ``scipy.linalg.qr``.

    Returns:
        QRFactorization.
    """
    dense = _dense_input("qr", a)
    kwargs.setdefault("mode", "economic")
    result = scipy.linalg.qr(dense, overwrite_a=overwrite, **kwargs)
    if kwargs.get("pivoting", False):
        q, r, p = result
        return QRFactorization(q, r, p)
    q, r = result
    return QRFactorization(q, r)


def cholesky(
    a: MatrixLike, *, overwrite: bool = False, **kwargs: Any
) -> CholeskyFactorization:
    """Cholesky factorization of a Hermitian positive definite matrix."""
    dense = _dense_input("cholesky", a)
    c, lower = scipy.linalg.cho_factor(dense, overwrite_a=overwrite, **kwargs)
    return CholeskyFactorization(c, bool(lower))


def ldlt(
    a: MatrixLike,
    *,
    lower: bool = True,
    hermitian: bool = True,
    overwrite: bool = False,
    **kwargs: Any,
) -> LDLFactorization:
    """LDL^H factorization of a symmetric/Hermitian matrix (lower storage)."""
    dense = _dense_input("ldlt", a)
    lu_, d, perm = scipy.linalg.ldl(
        dense, lower=lower, hermitian=hermitian, overwrite_a=overwrite, **kwargs
    )
    return LDLFactorization(lu_, d, perm, lower, hermitian)


def bunch_kaufman(
    a: MatrixLike,
    *,
    lower: bool = False,
    hermitian: bool = True,
    overwrite: bool = False,
    **kwargs: Any,
) -> LDLFactorization:
    """
    Bunch-Kaufman factorization of a symmetric/Hermitian indefinite matrix.

    Same LAPACK kernel as ``ldlt`` (sytrf/hetrf) but with upper storage by
    default. Pass ``hermitian=False`` for complex symmetric matrices.

    Args:
        a: Dense square matrix.
        lower: Factorize using the lower triangle.
        hermitian: Treat ``a`` as Hermitian rather than complex symmetric.
        overwrite: Allow SciPy to overwrite ``a``.
        **kwargs: Extra keyword arguments for ``scipy.linalg.ldl``.

    Returns:
        LDLFactorization.
    """
    dense = _dense_input("bunch_kaufman", a)
    lu_, d, perm = scipy.linalg.ldl(
        dense, lower=lower, hermitian=hermitian, overwrite_a=overwrite, **kwargs
    )
    return LDLFactorization(lu_, d, perm, lower, hermitian)


def lq(a: MatrixLike, *, overwrite: bool = False, **kwargs: Any) -> LQFactorization:
    """LQ factorization; keyword arguments go to ``scipy.linalg.qr`` of ``A^H``."""
    dense = _dense_input("lq", a)
    kwargs.setdefault("mode", "economic")
    q, r = scipy.linalg.qr(dense.conj().T, overwrite_a=overwrite, **kwargs)
    return LQFactorization(r.conj().T, q.conj().T)


def svd(a: MatrixLike, *, overwrite: bool = False, **kwargs: Any) -> SVDFactorization:
    """Thin singular value decomposition."""
    dense = _dense_input("svd", a)
    kwargs.setdefault("full_matrices", False)
    u, s, vh = scipy.linalg.svd(dense, overwrite_a=overwrite, **kwargs)
    return SVDFactorization(u, s, vh)


def factorize(a: MatrixLike) -> Factorization:
    """
    Pick a factorization from the structure of the matrix.

    - sparse: SuperLU
    - non-square: QR (least squares)
    - Hermitian: Cholesky, or Bunch-Kaufman if not positive definite
    - otherwise: LU

    Args:
        a: Dense or sparse matrix.

    Returns:
        A factorization handle.
    """
    if issparse(a):
        return lu(a)
    dense = np.asarray(a)
    rows, cols = dense.shape
    if rows != cols:
        return qr(dense)
    if _linalg.is_hermitian(dense):
        try:
            return cholesky(dense)
        except np.linalg.LinAlgError:
            return bunch_kaufman(dense)
    return lu(dense)


FACTORIZATIONS: Final[Mapping[str, FactorizationFunc]] = MappingProxyType({
    "lu": lu,
    "qr": qr,
    "cholesky": cholesky,
    "ldlt": ldlt,
    "bunch_kaufman": bunch_kaufman,
    "lq": lq,
    "svd": svd,
})
