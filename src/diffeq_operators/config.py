"""Factorization configuration for solver setup phases.

Solvers typically read their linear-solver choices from a plain mapping
(YAML/JSON config). FactorizationConfig validates such a mapping and
factorize_operator applies it to a MatrixOperator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import raise_unsupported_operation
from .operators import MatrixOperator

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .operators import FactorizedMatrixOperator

FactorizationMethod = Literal[
    "auto",
    "lu",
    "qr",
    "cholesky",
    "ldlt",
    "bunch_kaufman",
    "lq",
    "svd",
]

_AUTO_OPTIONS_ERROR = (
    "method 'auto' picks the factorization itself and accepts neither "
    "overwrite nor options"
)
_OVERWRITE_OPTION_ERROR = (
    "options must not contain 'overwrite_a'; set overwrite=True instead"
)


class FactorizationConfig(BaseModel):
    """Configuration schema for factorizing a MatrixOperator."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: FactorizationMethod = Field(
        default="auto",
        description=(
            "Factorization to compute; 'auto' chooses from the matrix structure"
        ),
    )
    overwrite: bool = Field(
        default=False,
        description="Use the in-place variant, letting SciPy overwrite the matrix",
    )
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Extra keyword arguments for the SciPy factorization routine",
    )

    @model_validator(mode="after")
    def _validate_options(self) -> FactorizationConfig:
        if self.method == "auto" and (self.overwrite or self.options):
            raise ValueError(_AUTO_OPTIONS_ERROR)
        if "overwrite_a" in self.options:
            raise ValueError(_OVERWRITE_OPTION_ERROR)
        return self

    @property
    def method_name(self) -> str:
        """Name of the MatrixOperator method this config selects."""
        if self.method == "auto":
            return "factorize"
        return f"{self.method}_inplace" if self.overwrite else self.method


def factorize_operator(
    op: MatrixOperator,
    config: FactorizationConfig | Mapping[str, Any] | None = None,
) -> FactorizedMatrixOperator:
    """
    Factorize a MatrixOperator as described by a config.

    Args:
        op: Operator whose current matrix is factorized.
        config: FactorizationConfig, a mapping validated into one, or None for
            the default ('auto').

    Raises:
        UnsupportedOperationError: If op is not a MatrixOperator.

    Returns:
        The resulting FactorizedMatrixOperator.
    """
    if not isinstance(op, MatrixOperator):
        raise_unsupported_operation(
            "factorization",
            op,
            supported=getattr(op, "_SUPPORTED", "no operator interface"),
        )

    if config is None:
        cfg = FactorizationConfig()
    elif isinstance(config, FactorizationConfig):
        cfg = config
    else:
        cfg = FactorizationConfig.model_validate(dict(config))

    return getattr(op, cfg.method_name)(**cfg.options)
