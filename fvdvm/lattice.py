"""
Discrete Velocity Lattice

Tensor-product velocity grid for the discrete velocity method.

Each axis is a uniform partition of [xi_min, xi_max] into n points
integrated with the composite Simpson rule:

    w = h/3 * [1, 4, 2, 4, ..., 2, 4, 1],    h = (xi_max - xi_min) / (n - 1)

The 3D lattice holds n^3 points; the weight of point (ix, iy, iz) is
w[ix] * w[iy] * w[iz]. Points are ordered with x slowest and z fastest:

    I = (ix * n + iy) * n + iz
"""

import numbers
from typing import NamedTuple

import numpy as np

from .errors import ConfigurationError


class LatticePoint(NamedTuple):
    """Velocity abscissa and quadrature weight."""
    xi: np.ndarray
    weight: float


def validate_resolution(n):
    """
    Check that n admits the composite Simpson rule (n = 4k + 1, k >= 1).

    Raises
    ------
    ConfigurationError
        If n is not an integer of the form 4k + 1.
    """
    if isinstance(n, bool) or not isinstance(n, numbers.Real) or not float(n).is_integer():
        raise ConfigurationError(f"Discrete velocities per axis must be an integer, got {n!r}")
    if n < 5 or (int(n) - 1) % 4 != 0:
        raise ConfigurationError(
            f"Discrete velocities per axis must be 4*k + 1 with k >= 1, got {n}"
        )
    return int(n)


def simpson_weights(xi_min, xi_max, n):
    """
    One-dimensional abscissas and composite Simpson weights.

    Parameters
    ----------
    xi_min, xi_max : float
        Velocity bounds
    n : int
        Number of points (4k + 1)

    Returns
    -------
    xis : ndarray
        Abscissas, shape (n,)
    weights : ndarray
        Quadrature weights, shape (n,), summing to xi_max - xi_min
    """
    n = validate_resolution(n)
    if not xi_min < xi_max:
        raise ConfigurationError(f"Require xi_min < xi_max, got [{xi_min}, {xi_max}]")

    h = (xi_max - xi_min) / (n - 1)
    xis = xi_min + h * np.arange(n, dtype=np.float64)
    # linspace end point is exact, arange accumulation is not
    xis[-1] = xi_max

    pattern = np.ones(n, dtype=np.float64)
    pattern[1:-1:2] = 4.0
    pattern[2:-1:2] = 2.0

    return xis, pattern * h / 3.0


class VelocityLattice:
    """
    Three-dimensional discrete velocity set.

    Parameters
    ----------
    xi_min, xi_max : float
        Velocity bounds, shared by all three axes
    n_per_dim : int
        Points per axis (4k + 1)

    Attributes
    ----------
    xis : ndarray
        Abscissas, shape (N, 3), read-only
    weights : ndarray
        Tensor-product weights, shape (N,), read-only
    points : tuple of LatticePoint
        Point views into ``xis`` and ``weights``
    """

    def __init__(self, xi_min, xi_max, n_per_dim):
        self.xi_min = float(xi_min)
        self.xi_max = float(xi_max)
        self.n_per_dim = validate_resolution(n_per_dim)

        self.xis_1d, self.weights_1d = simpson_weights(
            self.xi_min, self.xi_max, self.n_per_dim
        )

        ix, iy, iz = np.meshgrid(
            np.arange(self.n_per_dim),
            np.arange(self.n_per_dim),
            np.arange(self.n_per_dim),
            indexing='ij',
        )
        ix, iy, iz = ix.ravel(), iy.ravel(), iz.ravel()

        self.xis = np.stack(
            [self.xis_1d[ix], self.xis_1d[iy], self.xis_1d[iz]], axis=1
        )
        self.weights = self.weights_1d[ix] * self.weights_1d[iy] * self.weights_1d[iz]
        self.xis.flags.writeable = False
        self.weights.flags.writeable = False

        self.points = tuple(
            LatticePoint(self.xis[i], float(self.weights[i]))
            for i in range(len(self.weights))
        )

    def __len__(self):
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    def __getitem__(self, i):
        return self.points[i]

    @property
    def size(self):
        """Total number of discrete velocities, n_per_dim^3."""
        return len(self.points)

    @property
    def xi_abs_max(self):
        """Largest velocity magnitude along any single axis."""
        return max(abs(self.xi_min), abs(self.xi_max))

    @property
    def spacing(self):
        return (self.xi_max - self.xi_min) / (self.n_per_dim - 1)

    def index(self, ix, iy, iz):
        """Flat index of the point with per-axis indices (ix, iy, iz)."""
        n = self.n_per_dim
        for i in (ix, iy, iz):
            if not 0 <= i < n:
                raise IndexError(f"Axis index {i} out of range [0, {n})")
        return (ix * n + iy) * n + iz

    def point_xyz(self, ix, iy, iz):
        return self.points[self.index(ix, iy, iz)]


def build_velocity_lattice(xi_min, xi_max, n_per_dim):
    """
    Build the discrete velocity lattice.

    Parameters
    ----------
    xi_min, xi_max : float
        Velocity bounds
    n_per_dim : int
        Points per axis, must be 4k + 1

    Returns
    -------
    lattice : VelocityLattice

    Raises
    ------
    ConfigurationError
        For a resolution not of the form 4k + 1 or inverted bounds.
    """
    if not (np.isfinite(xi_min) and np.isfinite(xi_max)) or xi_min >= xi_max:
        raise ConfigurationError(f"Require finite xi_min < xi_max, got [{xi_min}, {xi_max}]")
    return VelocityLattice(xi_min, xi_max, n_per_dim)
