"""diffeq_operators: time-dependent linear operators for ODE/PDE solvers."""

from __future__ import annotations

from .config import FactorizationConfig, factorize_operator
from .errors import (
    DiffEqOperatorError,
    ErrorCode,
    InvalidOperatorError,
    OperandTypeError,
    UnsupportedOperationError,
)
from .factorizations import (
    CholeskyFactorization,
    Factorization,
    LDLFactorization,
    LQFactorization,
    LUFactorization,
    QRFactorization,
    SparseLUFactorization,
    SVDFactorization,
)
from .operators import (
    DEFAULT_UPDATE_FUNC,
    DiffEqLinearOperator,
    FactorizedMatrixOperator,
    MatrixOperator,
    ScalarOperator,
    UpdateFunc,
)

__all__ = [
    "DEFAULT_UPDATE_FUNC",
    "CholeskyFactorization",
    "DiffEqLinearOperator",
    "DiffEqOperatorError",
    "ErrorCode",
    "Factorization",
    "FactorizationConfig",
    "FactorizedMatrixOperator",
    "InvalidOperatorError",
    "LDLFactorization",
    "LQFactorization",
    "LUFactorization",
    "MatrixOperator",
    "OperandTypeError",
    "QRFactorization",
    "SVDFactorization",
    "ScalarOperator",
    "SparseLUFactorization",
    "UnsupportedOperationError",
    "UpdateFunc",
    "factorize_operator",
]

__version__ = "0.1.0"
