"""
Finite volume discrete velocity method for rarefied gas flows.
"""

from .config import DVMParameters, GasProperties
from .errors import ConfigurationError, NumericalValidityError
from .lattice import LatticePoint, VelocityLattice, build_velocity_lattice
from .mesh import FvMesh, build_box_mesh
from .solver import FvDVM

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DVMParameters",
    "FvDVM",
    "FvMesh",
    "GasProperties",
    "LatticePoint",
    "NumericalValidityError",
    "VelocityLattice",
    "build_box_mesh",
    "build_velocity_lattice",
]
