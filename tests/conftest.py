"""Global pytest configuration and shared fixtures for diffeq_operators."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

import numpy as np
import pytest

if TYPE_CHECKING:
    from numpy.typing import NDArray

    FloatArray = NDArray[np.floating]

_SEED: Final[int] = 20240517
_N: Final[int] = 6


# -----------------------------------------------------------------------------
# Global markers registration safety (for local pytest runs)
# -----------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used by the test suite."""
    config.addinivalue_line(
        "markers",
        "factorization: mark test as exercising a SciPy factorization kernel",
    )


# -----------------------------------------------------------------------------
# Matrices
# -----------------------------------------------------------------------------


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded generator so failures are reproducible."""
    return np.random.default_rng(_SEED)


@pytest.fixture
def general_matrix(rng: np.random.Generator) -> FloatArray:
    """Well-conditioned non-symmetric square matrix (diagonally dominant)."""
    a = rng.standard_normal((_N, _N))
    return a + 2.0 * _N * np.eye(_N)


@pytest.fixture
def spd_matrix(rng: np.random.Generator) -> FloatArray:
    """Exactly symmetric positive definite matrix."""
    m = rng.standard_normal((_N, _N))
    a = m @ m.T + _N * np.eye(_N)
    return 0.5 * (a + a.T)


@pytest.fixture
def indefinite_matrix(rng: np.random.Generator) -> FloatArray:
    """Exactly symmetric, nonsingular, indefinite matrix."""
    q, _ = np.linalg.qr(rng.standard_normal((_N, _N)))
    eigs = np.array([3.0, -2.0, 1.5, -1.0, 4.0, -5.0])
    a = (q * eigs) @ q.T
    return 0.5 * (a + a.T)


@pytest.fixture
def rhs(rng: np.random.Generator) -> FloatArray:
    """Right-hand side vector matching the fixture matrices."""
    return rng.standard_normal(_N)
