"""Model parameters for the static labor-supply simulation.

Preferences, the tax regime and the simulation settings are frozen pydantic
models: values are validated once at construction, and a bundle cannot be
mutated after it has been handed to the simulator.

Usage:
    >>> from laborsupply.params import SimulationParams, Preferences
    >>> params = SimulationParams(n=500, preferences=Preferences(beta0=0.0))
    >>> params.preferences.eta
    -1.5
    >>> params.preferences.describe('gamma')
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _describe(model: BaseModel, param_name: str) -> None:
    """Print the value and documentation of one parameter."""
    if param_name not in type(model).model_fields:
        raise ValueError(f"Unknown parameter: {param_name}")

    field_info = type(model).model_fields[param_name]
    extra = field_info.json_schema_extra or {}

    print(f"\n{'=' * 70}")
    print(f"Parameter: {param_name}")
    print(f"{'=' * 70}")
    print(f"Value: {getattr(model, param_name)}")
    print(f"\nDescription:")
    print(f"  {field_info.description}")
    if 'interpretation' in extra:
        print(f"\nInterpretation:")
        print(f"  {extra['interpretation']}")
    print(f"{'=' * 70}\n")


# ============================================================================
# Preferences
# ============================================================================

class Preferences(BaseModel):
    """Utility parameters shared by every agent.

    u(c, h) = c^(1+eta)/(1+eta) - beta * h^(1+gamma)/(1+gamma) - fixed cost,
    where the fixed cost beta0 is paid out of consumption only when h > 0.
    """

    model_config = {'frozen': True, 'extra': 'forbid'}

    eta: float = Field(
        default=-1.5,
        lt=0.0,
        description="Curvature of consumption utility. Must be negative (diminishing marginal utility) and different from -1.",
        json_schema_extra={
            'interpretation': '-eta is the coefficient on log(c) in the log first-order condition',
        }
    )

    gamma: float = Field(
        default=0.8,
        gt=0.0,
        description="Curvature of the disutility of hours.",
        json_schema_extra={
            'interpretation': 'Coefficient on log(h) in the log first-order condition (inverse Frisch elasticity)',
        }
    )

    beta: float = Field(
        default=1.0,
        gt=0.0,
        description="Population disutility-of-hours scale, used when there is no per-agent heterogeneity.",
    )

    beta0: float = Field(
        default=0.1,
        ge=0.0,
        description="Fixed cost of working, subtracted from consumption only when hours are positive.",
        json_schema_extra={
            'interpretation': 'Creates an extensive margin: some agents prefer h = 0',
        }
    )

    @field_validator('eta')
    @classmethod
    def validate_eta(cls, v):
        """Reject the log-utility singularity, where c^(1+eta)/(1+eta) is undefined."""
        if v == -1.0:
            raise ValueError(f"eta must differ from -1, got {v}")
        return v

    def describe(self, param_name: str) -> None:
        _describe(self, param_name)


# ============================================================================
# Tax regime
# ============================================================================

class TaxRegime(BaseModel):
    """Linear tax schedule: net earnings are rho * w * h - r."""

    model_config = {'frozen': True, 'extra': 'forbid'}

    rho: float = Field(
        default=1.0,
        gt=0.0,
        description="Net-of-tax wage multiplier (1 - marginal tax rate).",
    )

    r: float = Field(
        default=0.0,
        description="Lump-sum tax (positive) or transfer (negative).",
    )

    def describe(self, param_name: str) -> None:
        _describe(self, param_name)


# ============================================================================
# Simulation settings
# ============================================================================

class SimulationParams(BaseModel):
    """Everything needed to draw one cross-section of agents."""

    model_config = {'frozen': True, 'extra': 'forbid'}

    n: int = Field(
        default=1000,
        gt=0,
        description="Number of agents in the cross-section.",
    )

    lb: float = Field(
        default=0.5,
        description="Return of the covariate X in the log wage: lw = lb * X + 0.2 * noise.",
    )

    preferences: Preferences = Field(default_factory=Preferences)

    tax: TaxRegime = Field(default_factory=TaxRegime)

    heterogeneity: bool = Field(
        default=False,
        description="Draw a per-agent disutility scale betai = exp(0.5 X + 0.1 noise) instead of using beta.",
    )

    instrument: bool = Field(
        default=False,
        description="Draw an excluded instrument Z that shifts non-labor income only.",
    )

    n_iter: int = Field(
        default=30,
        ge=1,
        description="Number of Newton steps applied to every agent's hours.",
    )

    tol: float = Field(
        default=1e-8,
        gt=0.0,
        description="Relative first-order-condition residual below which an agent's hours count as converged.",
    )

    seed: Optional[int] = Field(
        default=None,
        description="Seed for numpy's default generator. None draws fresh entropy.",
    )

    def describe(self, param_name: str) -> None:
        _describe(self, param_name)
