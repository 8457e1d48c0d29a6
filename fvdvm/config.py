"""
Solver Parameters

Discrete velocity and gas property parameters, consumed once at solver
construction. Dictionary keys follow the classic dugksFoam case layout:

    fvDVMparas
    {
        xi_max        1000.0;     // Max discrete velocity
        xi_min       -1000.0;     // Min discrete velocity
        nDV               41;     // Discrete velocities per axis, 4*k + 1
    }

    gasProperties
    {
        R            80.0;        // Specific gas constant
        omega        0.7;         // VHS viscosity-temperature index
        Tref         275.0;       // Reference temperature
        muRef        1.0e-3;      // Reference viscosity
        Pr           0.75;        // Prandtl number
    }
"""

import math
from dataclasses import dataclass

from .errors import ConfigurationError
from .lattice import validate_resolution


def _require_positive(name, value):
    if not math.isfinite(value) or value <= 0.0:
        raise ConfigurationError(f"{name} must be a positive finite number, got {value}")


@dataclass(frozen=True)
class DVMParameters:
    xi_min: float
    xi_max: float
    n_xi_per_dim: int

    def __post_init__(self):
        if not (math.isfinite(self.xi_min) and math.isfinite(self.xi_max)):
            raise ConfigurationError(
                f"Velocity bounds must be finite, got [{self.xi_min}, {self.xi_max}]"
            )
        if self.xi_min >= self.xi_max:
            raise ConfigurationError(
                f"xi_min must be smaller than xi_max, got [{self.xi_min}, {self.xi_max}]"
            )
        object.__setattr__(self, "n_xi_per_dim", validate_resolution(self.n_xi_per_dim))

    @classmethod
    def from_dict(cls, paras):
        """Build from an ``fvDVMparas``-style dictionary."""
        try:
            return cls(
                xi_min=float(paras["xi_min"]),
                xi_max=float(paras["xi_max"]),
                n_xi_per_dim=paras["nDV"],
            )
        except KeyError as exc:
            raise ConfigurationError(f"Missing fvDVMparas entry {exc}") from None


@dataclass(frozen=True)
class GasProperties:
    R: float
    omega: float
    T_ref: float
    mu_ref: float
    Pr: float
    K: float = 2.0           # internal degrees of freedom
    rho_ref: float = 1.0

    def __post_init__(self):
        _require_positive("R", self.R)
        _require_positive("omega", self.omega)
        _require_positive("Tref", self.T_ref)
        _require_positive("muRef", self.mu_ref)
        _require_positive("Pr", self.Pr)
        _require_positive("rhoRef", self.rho_ref)
        if not math.isfinite(self.K) or self.K < 0.0:
            raise ConfigurationError(f"KInner must be non-negative, got {self.K}")

    @classmethod
    def from_dict(cls, props):
        """Build from a ``gasProperties``-style dictionary."""
        try:
            return cls(
                R=float(props["R"]),
                omega=float(props["omega"]),
                T_ref=float(props["Tref"]),
                mu_ref=float(props["muRef"]),
                Pr=float(props["Pr"]),
                K=float(props.get("KInner", 2.0)),
                rho_ref=float(props.get("rhoRef", 1.0)),
            )
        except KeyError as exc:
            raise ConfigurationError(f"Missing gasProperties entry {exc}") from None

    @property
    def cs_sqr(self):
        """Isothermal sound speed squared, R * Tref."""
        return self.R * self.T_ref

    @property
    def cs(self):
        return math.sqrt(self.cs_sqr)

    @property
    def nu(self):
        """Kinematic viscosity at the reference state."""
        return self.mu_ref / self.rho_ref

    @property
    def tau(self):
        """Relaxation time at the reference state, nu / (R * Tref)."""
        return self.nu / self.cs_sqr
