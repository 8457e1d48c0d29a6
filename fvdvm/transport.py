"""
Transport Kernels

Volume update and upwind face interpolation over the whole lattice.

Volume update (explicit finite volume step with exponential relaxation):

    g_c <- g_c + (1 - exp(-dt/tau_c)) (g_eq_c - g_c)
               - dt / V_c * sum_f (xi . S_f) g_f

The relaxation weight 1 - exp(-dt/tau) stays in [0, 1) for any dt/tau,
and the collision term keeps the cell moments because the discrete
equilibrium matches them exactly.

Face interpolation (first-order upwind, per discrete velocity):

    g_f = g_owner       if xi . S_f >= 0
    g_f = g_neighbour   otherwise

Incoming directions on boundary faces are left for the boundary patches.

Every discrete velocity touches only its own row, so the Numba kernels run
prange over velocities.
"""

import numpy as np
from numba import njit, prange


def relaxation_weight(dt, tau):
    """Per-cell weight 1 - exp(-dt/tau)."""
    return -np.expm1(-dt / tau)


def update_volume(g_vol, g_surf, g_eq, relax, xi_dot_sf, mesh, dt):
    """
    Volume update for one or more discrete velocities (in place).

    Parameters
    ----------
    g_vol : ndarray
        Cell values, shape (n_cells,) or (N, n_cells). Modified in place.
    g_surf : ndarray
        Face values, shape (n_faces,) or (N, n_faces)
    g_eq : ndarray
        Equilibrium at cell centres, same shape as g_vol
    relax : ndarray
        Relaxation weight per cell, shape (n_cells,)
    xi_dot_sf : ndarray
        xi . S_f, shape (n_faces,) or (N, n_faces)
    mesh : FvMesh
    dt : float
        Time step
    """
    divergence = mesh.surface_integrate(xi_dot_sf * g_surf)
    g_vol += relax * (g_eq - g_vol) - dt * divergence


def update_faces(g_vol, g_surf, xi_dot_sf, mesh):
    """
    Upwind face interpolation for one discrete velocity (in place).

    Parameters
    ----------
    g_vol : ndarray
        Cell values, shape (n_cells,)
    g_surf : ndarray
        Face values, shape (n_faces,). Modified in place.
    xi_dot_sf : ndarray
        xi . S_f, shape (n_faces,)
    mesh : FvMesh
    """
    internal = mesh.internal_faces
    outgoing = xi_dot_sf[internal] >= 0.0
    g_surf[internal] = np.where(
        outgoing,
        g_vol[mesh.owner[internal]],
        g_vol[mesh.neighbour[internal]],
    )

    boundary = mesh.boundary_faces
    leaving = boundary[xi_dot_sf[boundary] >= 0.0]
    g_surf[leaving] = g_vol[mesh.owner[leaving]]


@njit(parallel=True, cache=True)
def update_volume_numba(g_vol, h_vol, g_surf, h_surf, g_eq, h_eq, relax,
                        xis, face_areas, owner, neighbour, inv_volumes, dt):
    """
    Numba-accelerated volume update of g and h.

    Parameters
    ----------
    g_vol, h_vol : ndarray
        Cell values, shape (N, n_cells). Modified in place.
    g_surf, h_surf : ndarray
        Face values, shape (N, n_faces)
    g_eq, h_eq : ndarray
        Equilibria, shape (N, n_cells)
    relax : ndarray
        Relaxation weight, shape (n_cells,)
    xis : ndarray
        Abscissas, shape (N, 3)
    face_areas : ndarray
        Face area vectors, shape (n_faces, 3)
    owner, neighbour : ndarray
        Face connectivity, neighbour = -1 on boundary faces
    inv_volumes : ndarray
        1 / V, shape (n_cells,)
    dt : float
        Time step
    """
    n_xi, n_cells = g_vol.shape
    n_faces = g_surf.shape[1]

    for i in prange(n_xi):
        div_g = np.zeros(n_cells)
        div_h = np.zeros(n_cells)

        for f in range(n_faces):
            xn = (xis[i, 0] * face_areas[f, 0]
                  + xis[i, 1] * face_areas[f, 1]
                  + xis[i, 2] * face_areas[f, 2])
            flux_g = xn * g_surf[i, f]
            flux_h = xn * h_surf[i, f]

            o = owner[f]
            div_g[o] += flux_g
            div_h[o] += flux_h
            nb = neighbour[f]
            if nb >= 0:
                div_g[nb] -= flux_g
                div_h[nb] -= flux_h

        for c in range(n_cells):
            g_vol[i, c] += (relax[c] * (g_eq[i, c] - g_vol[i, c])
                            - dt * (div_g[c] * inv_volumes[c]))
            h_vol[i, c] += (relax[c] * (h_eq[i, c] - h_vol[i, c])
                            - dt * (div_h[c] * inv_volumes[c]))


@njit(parallel=True, cache=True)
def update_faces_numba(g_vol, h_vol, g_surf, h_surf, xis, face_areas, owner, neighbour):
    """
    Numba-accelerated upwind interpolation of g and h.

    Parameters
    ----------
    g_vol, h_vol : ndarray
        Cell values, shape (N, n_cells)
    g_surf, h_surf : ndarray
        Face values, shape (N, n_faces). Modified in place.
    """
    n_xi = g_vol.shape[0]
    n_faces = g_surf.shape[1]

    for i in prange(n_xi):
        for f in range(n_faces):
            xn = (xis[i, 0] * face_areas[f, 0]
                  + xis[i, 1] * face_areas[f, 1]
                  + xis[i, 2] * face_areas[f, 2])
            nb = neighbour[f]

            if xn >= 0.0:
                src = owner[f]
            elif nb >= 0:
                src = nb
            else:
                continue

            g_surf[i, f] = g_vol[i, src]
            h_surf[i, f] = h_vol[i, src]


def update_volume_fast(g_vol, h_vol, g_surf, h_surf, g_eq, h_eq, relax, xis, mesh, dt):
    """
    Fast volume update of the whole lattice using Numba (in place).
    """
    update_volume_numba(
        g_vol, h_vol, g_surf, h_surf, g_eq, h_eq,
        np.ascontiguousarray(relax, dtype=np.float64),
        xis, mesh.face_areas, mesh.owner, mesh.neighbour,
        mesh.inv_volumes, float(dt)
    )


def update_faces_fast(g_vol, h_vol, g_surf, h_surf, xis, mesh):
    """
    Fast upwind interpolation of the whole lattice using Numba (in place).
    """
    update_faces_numba(
        g_vol, h_vol, g_surf, h_surf, xis,
        mesh.face_areas, mesh.owner, mesh.neighbour
    )
