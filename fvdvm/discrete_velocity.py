"""
Discrete Velocity State

Per-velocity transport state of the discrete velocity method. Each
DiscreteVelocity owns one row of the solver's distribution arrays:

    g_vol, h_vol    : cell-centre values, shape (n_cells,)
    g_surf, h_surf  : face values, shape (n_faces,)

g is the translational distribution, h carries the internal energy so the
Shakhov target reproduces the configured Prandtl number.
"""

from functools import cached_property

from .equilibrium import compute_equilibrium, relaxation_time
from .transport import relaxation_weight, update_faces, update_volume


class DiscreteVelocity:
    """
    Transport state of a single lattice point.

    Parameters
    ----------
    dvm : FvDVM
        Owning solver, gives access to the mesh and gas properties
    index : int
        Flat lattice index
    point : LatticePoint
        Abscissa and weight, referenced from the lattice
    g_vol, h_vol, g_surf, h_surf : ndarray
        Row views into the solver arrays
    """

    def __init__(self, dvm, index, point, g_vol, h_vol, g_surf, h_surf):
        self.dvm = dvm
        self.index = index
        self.point = point
        self.g_vol = g_vol
        self.h_vol = h_vol
        self.g_surf = g_surf
        self.h_surf = h_surf

    @cached_property
    def xi_dot_sf(self):
        """Face projections xi . S_f, shape (n_faces,), built on first use."""
        return self.dvm.mesh.face_areas @ self.point.xi

    @property
    def xi(self):
        return self.point.xi

    @property
    def weight(self):
        return self.point.weight

    def local_equilibrium(self, rho, U, T, q, a, b):
        """
        Discrete equilibrium at this lattice velocity.

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
        a, b : ndarray
            Conservative correction coefficients

        Returns
        -------
        g_eq, h_eq : ndarray
            Shape (n_cells,)
        """
        gas = self.dvm.gas
        return compute_equilibrium(rho, U, T, q, a, b, self.xi, gas.R, gas.Pr, gas.K)

    def relaxation_time(self, rho, T):
        """
        Local relaxation time tau = mu(T) / (rho R T).

        Raises
        ------
        NumericalValidityError
            If any density or temperature is non-positive.
        """
        gas = self.dvm.gas
        return relaxation_time(rho, T, gas.mu_ref, gas.T_ref, gas.omega, gas.R)

    def update_volume(self, dt, snapshot):
        """
        Advance cell values by one step.

        Relaxes towards the equilibrium of ``snapshot`` and subtracts the
        net face flux of the previous face values. An equilibrium state
        with zero flux divergence is left unchanged.
        """
        g_eq, h_eq = self.local_equilibrium(
            snapshot.rho, snapshot.U, snapshot.T, snapshot.q, snapshot.a, snapshot.b
        )
        relax = relaxation_weight(dt, snapshot.tau)

        mesh = self.dvm.mesh
        update_volume(self.g_vol, self.g_surf, g_eq, relax, self.xi_dot_sf, mesh, dt)
        update_volume(self.h_vol, self.h_surf, h_eq, relax, self.xi_dot_sf, mesh, dt)

    def update_faces(self):
        """
        Upwind face values from the current cell values.

        Owner value where xi . S_f >= 0, neighbour value otherwise. Incoming
        values on boundary faces are set by the boundary patches.
        """
        mesh = self.dvm.mesh
        update_faces(self.g_vol, self.g_surf, self.xi_dot_sf, mesh)
        update_faces(self.h_vol, self.h_surf, self.xi_dot_sf, mesh)
