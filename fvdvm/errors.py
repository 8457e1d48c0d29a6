"""
Solver Exceptions

Both errors derive from ValueError so callers that already guard solver
parameters with ``except ValueError`` keep working.
"""


class ConfigurationError(ValueError):
    """Invalid lattice, gas, mesh or boundary parameters. Raised at construction."""


class NumericalValidityError(ValueError):
    """
    Non-physical state reached during evolution.

    Raised when density or temperature is non-positive or non-finite, or when
    the discrete equilibrium cannot be formed on the velocity lattice. The
    host density and velocity fields are left at their previous values, the
    per-velocity distributions must be considered invalid.
    """
