"""
Equilibrium Distribution Functions

Maxwellian equilibrium on the discrete velocity lattice, with the Shakhov
correction and a conservative discrete normalization.

The continuous Maxwellian for density rho, velocity U and temperature T is

    M(xi) = rho / (2 pi R T)^(3/2) * exp(-|xi - U|^2 / (2 R T))

A single BGK relaxation fixes the Prandtl number at 1. The translational
(g) and internal-energy (h) distributions relax towards Shakhov targets
which restore the configured Prandtl number:

    g+ = M * (1 + (1 - Pr) c.q / (5 p R T) * (c^2 / (R T) - 5))
    h+ = K R T M * (1 + (1 - Pr) c.q / (5 p R T) * (c^2 / (R T) - 3))

with c = xi - U, p = rho R T, q the heat flux and K the internal degrees
of freedom.

On a finite lattice the quadrature moments of g+ differ from rho and rho U.
Each cell therefore carries a linear correction a + b.c, chosen so that

    sum_i w_i g_eq_i = rho,    sum_i w_i xi_i g_eq_i = rho U

hold exactly. Writing Phi = g+ and m0, m1, m2 for its zeroth, first and
second central moments:

    b = -a m2^-1 m1,    a = rho / (m0 - m1 . m2^-1 m1)

The viscosity follows the variable hard sphere law

    mu = mu_ref * (T / T_ref)^omega,    tau = mu / (rho R T)
"""

import numpy as np
from numba import njit, prange

from .errors import NumericalValidityError


def maxwellian(rho, U, T, xi, R):
    """
    Continuous Maxwellian evaluated at lattice velocities.

    Parameters
    ----------
    rho : ndarray
        Density, shape (n_cells,)
    U : ndarray
        Velocity, shape (n_cells, 3)
    T : ndarray or float
        Temperature, shape (n_cells,) or scalar
    xi : ndarray
        Velocity abscissa, shape (3,) or (N, 3)
    R : float
        Specific gas constant

    Returns
    -------
    M : ndarray
        Shape (n_cells,) for a single abscissa, (N, n_cells) otherwise
    """
    RT = R * np.broadcast_to(T, np.shape(rho))
    c = np.asarray(xi)[..., None, :] - U
    c_sq = (c * c).sum(axis=-1)
    return rho / (2.0 * np.pi * RT) ** 1.5 * np.exp(-c_sq / (2.0 * RT))


def shakhov_factors(rho, U, T, q, xi, R, Pr):
    """
    Shakhov correction factors (1 + S_g, 1 + S_h).

    Returns
    -------
    s_g, s_h : ndarray
        Same shape as ``maxwellian`` output
    """
    RT = R * np.broadcast_to(T, np.shape(rho))
    c = np.asarray(xi)[..., None, :] - U
    c_sq = (c * c).sum(axis=-1) / RT
    cq = (c * q).sum(axis=-1)
    pre = (1.0 - Pr) * cq / (5.0 * rho * RT * RT)
    return 1.0 + pre * (c_sq - 5.0), 1.0 + pre * (c_sq - 3.0)


def equilibrium_coefficients(rho, U, T, q, xis, weights, R, Pr):
    """
    Conservative correction coefficients for the discrete equilibrium.

    Parameters
    ----------
    rho : ndarray
        Density, shape (n_cells,)
    U : ndarray
        Velocity, shape (n_cells, 3)
    T : ndarray
        Temperature, shape (n_cells,)
    q : ndarray
        Heat flux, shape (n_cells, 3)
    xis : ndarray
        Lattice abscissas, shape (N, 3)
    weights : ndarray
        Lattice weights, shape (N,)

    Returns
    -------
    a : ndarray
        Shape (n_cells,)
    b : ndarray
        Shape (n_cells, 3)
    """
    s_g, _ = shakhov_factors(rho, U, T, q, xis, R, Pr)
    phi = weights[:, None] * maxwellian(rho, U, T, xis, R) * s_g
    c = xis[:, None, :] - U[None, :, :]

    m0 = phi.sum(axis=0)
    m1 = np.einsum('ic,ick->ck', phi, c)
    m2 = np.einsum('ic,ick,icl->ckl', phi, c, c)

    return solve_equilibrium_coefficients(rho, m0, m1, m2)


def solve_equilibrium_coefficients(rho, m0, m1, m2):
    """
    Solve the per-cell moment system for (a, b).

    Raises
    ------
    NumericalValidityError
        If the lattice cannot represent the local Maxwellian.
    """
    try:
        m2_inv_m1 = np.linalg.solve(m2, m1[..., None])[..., 0]
    except np.linalg.LinAlgError as exc:
        raise NumericalValidityError(
            "Singular second moment of the discrete Maxwellian; "
            "the velocity lattice does not resolve the local state"
        ) from exc

    denom = m0 - np.einsum('ck,ck->c', m1, m2_inv_m1)
    bad = ~np.isfinite(denom) | (denom <= 0.0)
    if np.any(bad):
        raise NumericalValidityError(
            f"Discrete equilibrium undefined in {int(bad.sum())} cell(s); "
            "the velocity lattice does not resolve the local state"
        )

    a = rho / denom
    b = -a[:, None] * m2_inv_m1
    return a, b


def compute_equilibrium(rho, U, T, q, a, b, xi, R, Pr, K):
    """
    Discrete equilibrium (g_eq, h_eq).

    Works for a single abscissa of shape (3,) or the whole lattice (N, 3).

    Returns
    -------
    g_eq, h_eq : ndarray
        Shape (n_cells,) or (N, n_cells)
    """
    T = np.broadcast_to(T, np.shape(rho))
    M = maxwellian(rho, U, T, xi, R)
    s_g, s_h = shakhov_factors(rho, U, T, q, xi, R, Pr)
    c = np.asarray(xi)[..., None, :] - U
    correction = a + (c * b).sum(axis=-1)

    g_eq = M * s_g * correction
    h_eq = K * R * T * M * s_h * correction
    return g_eq, h_eq


@njit(parallel=True, cache=True)
def equilibrium_moments_numba(rho, U, T, q, xis, weights, R, Pr, m0, m1, m2):
    """
    Numba-accelerated moments of the Shakhov-corrected Maxwellian.

    Parameters
    ----------
    m0 : ndarray
        Output, shape (n_cells,)
    m1 : ndarray
        Output, shape (n_cells, 3)
    m2 : ndarray
        Output, shape (n_cells, 3, 3)
    """
    n_xi = xis.shape[0]
    n_cells = rho.shape[0]

    for c in prange(n_cells):
        RT = R * T[c]
        norm = rho[c] / (2.0 * np.pi * RT) ** 1.5
        pre = (1.0 - Pr) / (5.0 * rho[c] * RT * RT)
        s0 = 0.0
        s1 = np.zeros(3)
        s2 = np.zeros((3, 3))

        for i in range(n_xi):
            cx = xis[i, 0] - U[c, 0]
            cy = xis[i, 1] - U[c, 1]
            cz = xis[i, 2] - U[c, 2]
            c_sq = cx * cx + cy * cy + cz * cz
            cq = cx * q[c, 0] + cy * q[c, 1] + cz * q[c, 2]
            phi = weights[i] * norm * np.exp(-c_sq / (2.0 * RT))
            phi *= 1.0 + pre * cq * (c_sq / RT - 5.0)

            s0 += phi
            s1[0] += phi * cx
            s1[1] += phi * cy
            s1[2] += phi * cz
            s2[0, 0] += phi * cx * cx
            s2[0, 1] += phi * cx * cy
            s2[0, 2] += phi * cx * cz
            s2[1, 1] += phi * cy * cy
            s2[1, 2] += phi * cy * cz
            s2[2, 2] += phi * cz * cz

        s2[1, 0] = s2[0, 1]
        s2[2, 0] = s2[0, 2]
        s2[2, 1] = s2[1, 2]

        m0[c] = s0
        for k in range(3):
            m1[c, k] = s1[k]
            for l in range(3):
                m2[c, k, l] = s2[k, l]


@njit(parallel=True, cache=True)
def compute_equilibrium_numba(rho, U, T, q, a, b, xis, R, Pr, K, g_eq, h_eq):
    """
    Numba-accelerated discrete equilibrium over the whole lattice.

    Parameters
    ----------
    g_eq, h_eq : ndarray
        Output equilibria, shape (N, n_cells)
    """
    n_xi = xis.shape[0]
    n_cells = rho.shape[0]

    for i in prange(n_xi):
        for c in range(n_cells):
            RT = R * T[c]
            cx = xis[i, 0] - U[c, 0]
            cy = xis[i, 1] - U[c, 1]
            cz = xis[i, 2] - U[c, 2]
            c_sq = cx * cx + cy * cy + cz * cz
            cq = cx * q[c, 0] + cy * q[c, 1] + cz * q[c, 2]
            pre = (1.0 - Pr) * cq / (5.0 * rho[c] * RT * RT)

            M = rho[c] / (2.0 * np.pi * RT) ** 1.5 * np.exp(-c_sq / (2.0 * RT))
            correction = a[c] + b[c, 0] * cx + b[c, 1] * cy + b[c, 2] * cz

            g_eq[i, c] = M * (1.0 + pre * (c_sq / RT - 5.0)) * correction
            h_eq[i, c] = K * RT * M * (1.0 + pre * (c_sq / RT - 3.0)) * correction


def equilibrium_coefficients_fast(rho, U, T, q, xis, weights, R, Pr):
    """
    Fast conservative correction coefficients using Numba.

    Returns
    -------
    a : ndarray
        Shape (n_cells,)
    b : ndarray
        Shape (n_cells, 3)
    """
    n_cells = rho.shape[0]
    m0 = np.zeros(n_cells, dtype=np.float64)
    m1 = np.zeros((n_cells, 3), dtype=np.float64)
    m2 = np.zeros((n_cells, 3, 3), dtype=np.float64)

    equilibrium_moments_numba(
        rho, U, np.broadcast_to(T, rho.shape).astype(np.float64), q,
        xis, weights, float(R), float(Pr), m0, m1, m2
    )
    return solve_equilibrium_coefficients(rho, m0, m1, m2)


def compute_equilibrium_fast(rho, U, T, q, a, b, xis, R, Pr, K):
    """
    Fast discrete equilibrium over the whole lattice using Numba.

    Returns
    -------
    g_eq, h_eq : ndarray
        Shape (N, n_cells)
    """
    n_xi = xis.shape[0]
    n_cells = rho.shape[0]
    g_eq = np.zeros((n_xi, n_cells), dtype=np.float64)
    h_eq = np.zeros((n_xi, n_cells), dtype=np.float64)

    compute_equilibrium_numba(
        rho, U, np.broadcast_to(T, rho.shape).astype(np.float64), q, a, b,
        np.ascontiguousarray(xis), float(R), float(Pr), float(K), g_eq, h_eq
    )
    return g_eq, h_eq


def viscosity(T, mu_ref, T_ref, omega):
    """Variable hard sphere viscosity, mu_ref * (T / T_ref)^omega."""
    return mu_ref * (np.asarray(T) / T_ref) ** omega


def relaxation_time(rho, T, mu_ref, T_ref, omega, R):
    """
    Local relaxation time.

    tau = mu(T) / (rho * R * T)

    Parameters
    ----------
    rho : ndarray
        Density, shape (n_cells,)
    T : ndarray or float
        Temperature
    mu_ref, T_ref, omega, R : float
        Gas properties

    Returns
    -------
    tau : ndarray
        Relaxation time, shape (n_cells,)

    Raises
    ------
    NumericalValidityError
        If any density or temperature is non-positive or non-finite.
    """
    rho = np.asarray(rho, dtype=np.float64)
    T = np.broadcast_to(np.asarray(T, dtype=np.float64), rho.shape)

    bad_rho = ~np.isfinite(rho) | (rho <= 0.0)
    if np.any(bad_rho):
        raise NumericalValidityError(
            f"Non-positive or non-finite density in {int(bad_rho.sum())} cell(s), "
            f"min = {np.nanmin(rho) if rho.size else float('nan'):.6g}"
        )
    bad_T = ~np.isfinite(T) | (T <= 0.0)
    if np.any(bad_T):
        raise NumericalValidityError(
            f"Non-positive or non-finite temperature in {int(bad_T.sum())} cell(s)"
        )

    return viscosity(T, mu_ref, T_ref, omega) / (rho * R * T)
