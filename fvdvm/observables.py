"""
Macroscopic Observables

Quadrature moments of the discrete distributions.

    rho   = sum_i w_i g_i
    rho U = sum_i w_i xi_i g_i
    q     = 1/2 sum_i w_i c_i (|c_i|^2 g_i + h_i),    c_i = xi_i - U
    sigma = sum_i w_i (c_i c_i - |c_i|^2 I / 3) g_i

and the Courant number used by the host for time step control.
"""

import numpy as np
from numba import njit, prange

from .errors import NumericalValidityError


def compute_density(g, weights):
    """
    Compute density from the translational distribution.

    Parameters
    ----------
    g : ndarray
        Distribution, shape (N, n_cells)
    weights : ndarray
        Lattice weights, shape (N,)

    Returns
    -------
    rho : ndarray
        Density, shape (n_cells,)
    """
    return weights @ g


def compute_momentum(g, xis, weights):
    """Momentum density rho U, shape (n_cells, 3)."""
    return (g.T * weights) @ xis


def _check_density(rho):
    bad = ~np.isfinite(rho) | (rho <= 0.0)
    if np.any(bad):
        raise NumericalValidityError(
            f"Moment reduction produced non-positive or non-finite density "
            f"in {int(bad.sum())} cell(s)"
        )


def compute_macroscopic(g, xis, weights):
    """
    Compute density and velocity.

    Parameters
    ----------
    g : ndarray
        Distribution, shape (N, n_cells)
    xis : ndarray
        Abscissas, shape (N, 3)
    weights : ndarray
        Weights, shape (N,)

    Returns
    -------
    rho : ndarray
        Shape (n_cells,)
    U : ndarray
        Shape (n_cells, 3)

    Raises
    ------
    NumericalValidityError
        If any cell density is non-positive or non-finite.
    """
    rho = compute_density(g, weights)
    _check_density(rho)
    U = compute_momentum(g, xis, weights) / rho[:, None]
    return rho, U


def compute_heat_flux(g, h, xis, weights, U):
    """
    Heat flux, shape (n_cells, 3).

    Parameters
    ----------
    g, h : ndarray
        Distributions, shape (N, n_cells)
    U : ndarray
        Velocity, shape (n_cells, 3)
    """
    c = xis[:, None, :] - U[None, :, :]
    c_sq = (c * c).sum(axis=-1)
    return 0.5 * np.einsum('i,ick,ic->ck', weights, c, c_sq * g + h)


def compute_stress(g, xis, weights, U):
    """
    Deviatoric stress, shape (n_cells, 3, 3).

    sigma_kl = sum_i w_i (c_k c_l - |c|^2 delta_kl / 3) g_i
    """
    c = xis[:, None, :] - U[None, :, :]
    c_sq = (c * c).sum(axis=-1)
    pressure_part = np.einsum('i,ic->c', weights, c_sq * g) / 3.0
    second = np.einsum('i,ick,icl,ic->ckl', weights, c, c, g)
    return second - pressure_part[:, None, None] * np.eye(3)


@njit(parallel=True, cache=True)
def compute_moments_numba(g, h, xis, weights, rho, U, q):
    """
    Numba-accelerated moment reduction.

    Parameters
    ----------
    g, h : ndarray
        Distributions, shape (N, n_cells)
    rho : ndarray
        Output density, shape (n_cells,)
    U : ndarray
        Output velocity, shape (n_cells, 3)
    q : ndarray
        Output heat flux, shape (n_cells, 3)
    """
    n_xi, n_cells = g.shape

    for c in prange(n_cells):
        rho_local = 0.0
        mx = 0.0
        my = 0.0
        mz = 0.0
        for i in range(n_xi):
            wg = weights[i] * g[i, c]
            rho_local += wg
            mx += wg * xis[i, 0]
            my += wg * xis[i, 1]
            mz += wg * xis[i, 2]

        rho[c] = rho_local
        if rho_local > 0.0:
            ux = mx / rho_local
            uy = my / rho_local
            uz = mz / rho_local
        else:
            ux = 0.0
            uy = 0.0
            uz = 0.0
        U[c, 0] = ux
        U[c, 1] = uy
        U[c, 2] = uz

        qx = 0.0
        qy = 0.0
        qz = 0.0
        for i in range(n_xi):
            cx = xis[i, 0] - ux
            cy = xis[i, 1] - uy
            cz = xis[i, 2] - uz
            e = weights[i] * ((cx * cx + cy * cy + cz * cz) * g[i, c] + h[i, c])
            qx += cx * e
            qy += cy * e
            qz += cz * e
        q[c, 0] = 0.5 * qx
        q[c, 1] = 0.5 * qy
        q[c, 2] = 0.5 * qz


def compute_moments_fast(g, h, xis, weights):
    """
    Fast density, velocity and heat flux using Numba.

    Returns
    -------
    rho : ndarray
        Shape (n_cells,)
    U : ndarray
        Shape (n_cells, 3)
    q : ndarray
        Shape (n_cells, 3)

    Raises
    ------
    NumericalValidityError
        If any cell density is non-positive or non-finite.
    """
    n_cells = g.shape[1]
    rho = np.zeros(n_cells, dtype=np.float64)
    U = np.zeros((n_cells, 3), dtype=np.float64)
    q = np.zeros((n_cells, 3), dtype=np.float64)

    compute_moments_numba(g, h, xis, weights, rho, U, q)
    _check_density(rho)
    return rho, U, q


def compute_moments(g, h, xis, weights):
    """Density, velocity and heat flux with NumPy."""
    rho, U = compute_macroscopic(g, xis, weights)
    q = compute_heat_flux(g, h, xis, weights, U)
    return rho, U, q


def compute_total_mass(rho, cell_volumes):
    """Volume integral of density."""
    return float(np.dot(rho, cell_volumes))


def compute_boundary_mass_flux(g_surf, xis, weights, face_areas):
    """
    Net mass flux through faces, sum_i w_i (xi_i . S_f) g_f.

    Positive values leave the owner cell.

    Returns
    -------
    flux : ndarray
        Shape (n_faces,)
    """
    xi_dot_sf = xis @ face_areas.T
    return weights @ (xi_dot_sf * g_surf)


def compute_co_num(mesh, xi_min, xi_max, dt):
    """
    Courant number for the fastest discrete velocity.

    Co_c = 0.5 * dt * sum_f max_i |xi_i . S_f| / V_c

    xi . S_f is linear in xi, so its largest magnitude over a
    tensor-product lattice is reached at one of the 8 corners of the
    velocity box.

    Parameters
    ----------
    mesh : FvMesh
    xi_min, xi_max : float
        Velocity bounds, shared by all three axes
    dt : float
        Time step

    Returns
    -------
    max_co : float
        Maximum Courant number over cells
    mean_co : float
        Volume-averaged Courant number
    """
    bounds = np.array([xi_min, xi_max], dtype=np.float64)
    corners = np.stack(np.meshgrid(bounds, bounds, bounds, indexing='ij'), axis=-1).reshape(-1, 3)
    phi = np.abs(mesh.face_areas @ corners.T).max(axis=1)
    sum_phi = mesh.abs_surface_sum(phi)

    max_co = 0.5 * float(np.max(sum_phi / mesh.cell_volumes)) * dt
    mean_co = 0.5 * float(np.sum(sum_phi) / np.sum(mesh.cell_volumes)) * dt
    return max_co, mean_co
