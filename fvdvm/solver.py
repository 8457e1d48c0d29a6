"""
Finite Volume Discrete Velocity Method Solver

Solves the Boltzmann-Shakhov equation on a finite volume mesh with a
tensor-product discrete velocity lattice. One ``evolution()`` call runs:

    1. volume update       - every discrete velocity, from a read-only
                             snapshot of the macroscopic state
    2. face interpolation  - every discrete velocity, upwind
    3. boundary correction - patches set incoming face values and the
                             boundary density
    4. moment reduction    - density and velocity written to the host fields

Stages 1 and 2 are independent across discrete velocities. Stage 4 reads the
complete per-velocity state and is the only stage that writes the host
fields.
"""

import time
import warnings
from typing import NamedTuple

import numpy as np

from .boundary import BoundaryConditions
from .config import DVMParameters, GasProperties
from .discrete_velocity import DiscreteVelocity
from .equilibrium import (
    compute_equilibrium, compute_equilibrium_fast,
    equilibrium_coefficients, equilibrium_coefficients_fast,
    relaxation_time,
)
from .errors import ConfigurationError
from .lattice import build_velocity_lattice
from .observables import (
    compute_co_num, compute_moments, compute_moments_fast, compute_stress,
    compute_total_mass,
)
from .transport import relaxation_weight, update_faces_fast, update_volume_fast


class MacroscopicSnapshot(NamedTuple):
    """Read-only macroscopic state shared by stages 1-3 of a step."""
    rho: np.ndarray
    U: np.ndarray
    T: np.ndarray
    q: np.ndarray
    tau: np.ndarray
    a: np.ndarray
    b: np.ndarray


def _readonly(array):
    array = np.array(array, dtype=np.float64)
    array.flags.writeable = False
    return array


class FvDVM:
    """
    Discrete velocity method solver.

    Parameters
    ----------
    mesh : FvMesh
        Spatial mesh, read only
    rho : ndarray
        Host density field, shape (n_cells,). Updated in place.
    U : ndarray
        Host velocity field, shape (n_cells, 3). Updated in place.
    dvm_parameters : DVMParameters or dict
        Velocity bounds and resolution (``fvDVMparas`` keys for a dict)
    gas_properties : GasProperties or dict
        Gas model (``gasProperties`` keys for a dict)
    dt : float
        Time step
    boundary : dict, optional
        Patch name -> boundary condition, see ``BoundaryConditions``
    use_fast : bool
        Use Numba-accelerated kernels (default True)
    verbose : bool
        Print a setup summary

    Attributes
    ----------
    lattice : VelocityLattice
    dvs : list of DiscreteVelocity
    g_vol, h_vol : ndarray
        Cell distributions, shape (N, n_cells)
    g_surf, h_surf : ndarray
        Face distributions, shape (N, n_faces)
    rho_boundary : dict
        Patch name -> boundary density from the last boundary correction
    time_index : int
        Number of completed steps
    """

    def __init__(self, mesh, rho, U, dvm_parameters, gas_properties, dt,
                 boundary=None, use_fast=True, verbose=False):
        if isinstance(dvm_parameters, dict):
            dvm_parameters = DVMParameters.from_dict(dvm_parameters)
        if isinstance(gas_properties, dict):
            gas_properties = GasProperties.from_dict(gas_properties)

        self.mesh = mesh
        self.paras = dvm_parameters
        self.gas = gas_properties
        self.dt = dt
        self.use_fast = use_fast
        self.verbose = verbose

        self._check_fields(rho, U)
        self.rho = rho
        self.U = U
        self.T = np.full(mesh.n_cells, self.gas.T_ref)

        self.lattice = build_velocity_lattice(
            dvm_parameters.xi_min, dvm_parameters.xi_max, dvm_parameters.n_xi_per_dim
        )
        self._check_resolution()
        self.xis = np.ascontiguousarray(self.lattice.xis)
        self.weights = np.ascontiguousarray(self.lattice.weights)

        self.boundary = BoundaryConditions(mesh, self.lattice, self.gas, boundary)

        n_xi = self.lattice.size
        self.g_vol = np.zeros((n_xi, mesh.n_cells), dtype=np.float64)
        self.h_vol = np.zeros((n_xi, mesh.n_cells), dtype=np.float64)
        self.g_surf = np.zeros((n_xi, mesh.n_faces), dtype=np.float64)
        self.h_surf = np.zeros((n_xi, mesh.n_faces), dtype=np.float64)

        self.dvs = [
            DiscreteVelocity(
                self, i, point,
                self.g_vol[i], self.h_vol[i], self.g_surf[i], self.h_surf[i]
            )
            for i, point in enumerate(self.lattice)
        ]

        self.q = np.zeros((mesh.n_cells, 3), dtype=np.float64)
        self.rho_boundary = {}
        self.time_index = 0

        self._initialise_dv()

        if verbose:
            self.print_summary()

    # ------------------------------------------------------------------
    # Setup

    def _check_fields(self, rho, U):
        n_cells = self.mesh.n_cells
        if not isinstance(rho, np.ndarray) or rho.shape != (n_cells,):
            raise ConfigurationError(f"rho must be an ndarray of shape ({n_cells},)")
        if not isinstance(U, np.ndarray) or U.shape != (n_cells, 3):
            raise ConfigurationError(f"U must be an ndarray of shape ({n_cells}, 3)")
        if rho.dtype != np.float64 or U.dtype != np.float64:
            raise ConfigurationError("rho and U must be float64 arrays")

    def _check_resolution(self):
        cs = self.gas.cs
        if self.lattice.spacing > cs:
            warnings.warn(
                f"Velocity spacing {self.lattice.spacing:.4g} exceeds the thermal "
                f"speed sqrt(R*Tref) = {cs:.4g}; the Maxwellian is under-resolved"
            )
        if self.lattice.xi_min > -4.0 * cs or self.lattice.xi_max < 4.0 * cs:
            warnings.warn(
                f"Velocity bounds [{self.lattice.xi_min:.4g}, {self.lattice.xi_max:.4g}] "
                f"do not cover +-4 sqrt(R*Tref) = {4.0 * cs:.4g}"
            )

    def _initialise_dv(self):
        """Seed every discrete velocity with the equilibrium of the host fields."""
        snapshot = self._take_snapshot()
        g_eq, h_eq = self._equilibrium(snapshot)
        self.g_vol[:] = g_eq
        self.h_vol[:] = h_eq

        self._update_surf()
        self.rho_boundary = self.boundary.apply(
            self.g_surf, self.h_surf, self.g_vol, self.h_vol
        )

    # ------------------------------------------------------------------
    # Pipeline stages

    @property
    def dt(self):
        return self._dt

    @dt.setter
    def dt(self, value):
        value = float(value)
        if not np.isfinite(value) or value <= 0.0:
            raise ConfigurationError(f"Time step must be positive, got {value}")
        self._dt = value

    def _take_snapshot(self):
        """
        Freeze the macroscopic state for stages 1-3.

        Raises
        ------
        NumericalValidityError
            For non-positive density or temperature, or a Maxwellian the
            lattice cannot represent.
        """
        rho = _readonly(self.rho)
        U = _readonly(self.U)
        T = _readonly(self.T)
        q = _readonly(self.q)
        tau = relaxation_time(rho, T, self.gas.mu_ref, self.gas.T_ref, self.gas.omega, self.gas.R)

        if self.use_fast:
            a, b = equilibrium_coefficients_fast(
                rho, U, T, q, self.xis, self.weights, self.gas.R, self.gas.Pr
            )
        else:
            a, b = equilibrium_coefficients(
                rho, U, T, q, self.xis, self.weights, self.gas.R, self.gas.Pr
            )
        return MacroscopicSnapshot(rho, U, T, q, tau, a, b)

    def _equilibrium(self, snapshot):
        gas = self.gas
        if self.use_fast:
            return compute_equilibrium_fast(
                snapshot.rho, snapshot.U, snapshot.T, snapshot.q,
                snapshot.a, snapshot.b, self.xis, gas.R, gas.Pr, gas.K
            )
        return compute_equilibrium(
            snapshot.rho, snapshot.U, snapshot.T, snapshot.q,
            snapshot.a, snapshot.b, self.xis, gas.R, gas.Pr, gas.K
        )

    def _update_gbar_vol(self, snapshot):
        """1. Update g/h at cell centres, per DV."""
        if self.use_fast:
            g_eq, h_eq = self._equilibrium(snapshot)
            update_volume_fast(
                self.g_vol, self.h_vol, self.g_surf, self.h_surf, g_eq, h_eq,
                relaxation_weight(self.dt, snapshot.tau), self.xis, self.mesh, self.dt
            )
        else:
            for dv in self.dvs:
                dv.update_volume(self.dt, snapshot)

    def _update_surf(self):
        """2. Update g/h at cell faces (upwind interpolation), per DV."""
        if self.use_fast:
            update_faces_fast(
                self.g_vol, self.h_vol, self.g_surf, self.h_surf, self.xis, self.mesh
            )
        else:
            for dv in self.dvs:
                dv.update_faces()

    def _update_boundary(self):
        """3. Boundary correction: incoming face values and boundary density."""
        return self.boundary.apply(self.g_surf, self.h_surf, self.g_vol, self.h_vol)

    def _update_macro_vol(self):
        """4. Reduce all DVs into the macroscopic fields."""
        if self.use_fast:
            rho, U, q = compute_moments_fast(self.g_vol, self.h_vol, self.xis, self.weights)
        else:
            rho, U, q = compute_moments(self.g_vol, self.h_vol, self.xis, self.weights)

        self.rho[:] = rho
        self.U[:] = U
        self.q[:] = q

    def evolution(self):
        """
        Advance the solution by one time step.

        Raises
        ------
        NumericalValidityError
            When the macroscopic state becomes non-physical. The host fields
            keep their previous values; the distributions are invalid.
        """
        snapshot = self._take_snapshot()

        self._update_gbar_vol(snapshot)
        self._update_surf()
        rho_boundary = self._update_boundary()
        self._update_macro_vol()

        self.rho_boundary = rho_boundary
        self.time_index += 1

    def run(self, num_steps, report_interval=100, verbose=True):
        """
        Run the solver for a number of steps.

        Parameters
        ----------
        num_steps : int
            Number of time steps
        report_interval : int
            Steps between progress reports
        verbose : bool
            Print progress information

        Returns
        -------
        elapsed : float
            Wall time in seconds
        """
        start = time.perf_counter()

        for step in range(num_steps):
            self.evolution()

            if verbose and (step + 1) % report_interval == 0:
                max_co, mean_co = self.get_co_num()
                print(f"Step {self.time_index}: Co max = {max_co:.4f}, "
                      f"mean = {mean_co:.4f}, mass = {self.total_mass():.10g}")

        elapsed = time.perf_counter() - start
        if verbose:
            print(f"Completed {num_steps} steps in {elapsed:.2f}s")
        return elapsed

    # ------------------------------------------------------------------
    # Access

    def get_co_num(self):
        """
        Courant number of the fastest discrete velocity.

        Returns
        -------
        max_co, mean_co : float
        """
        return compute_co_num(self.mesh, self.lattice.xi_min, self.lattice.xi_max, self.dt)

    def total_mass(self):
        """Volume integral of density."""
        return compute_total_mass(self.rho, self.mesh.cell_volumes)

    def heat_flux(self):
        """Heat flux at cell centres from the last moment reduction."""
        return self.q.copy()

    def stress(self):
        """Deviatoric stress from the current distributions, shape (n_cells, 3, 3)."""
        return compute_stress(self.g_vol, self.xis, self.weights, self.U)

    def dv(self, i):
        """DiscreteVelocity object for flat lattice index i."""
        return self.dvs[i]

    def dv_xyz(self, ix, iy, iz):
        """DiscreteVelocity object for per-axis indices (ix, iy, iz)."""
        return self.dvs[self.lattice.index(ix, iy, iz)]

    @property
    def rho_vol(self):
        return self.rho

    @property
    def u_vol(self):
        return self.U

    @property
    def n_xi(self):
        return self.lattice.size

    @property
    def n_xi_per_dim(self):
        return self.lattice.n_per_dim

    @property
    def xi_max(self):
        return self.lattice.xi_max

    @property
    def xi_min(self):
        return self.lattice.xi_min

    @property
    def nu(self):
        return self.gas.nu

    @property
    def cs_sqr(self):
        return self.gas.cs_sqr

    @property
    def cs(self):
        return self.gas.cs

    @property
    def tau(self):
        return self.gas.tau

    @property
    def omega(self):
        return self.gas.omega

    def print_summary(self):
        max_co, mean_co = self.get_co_num()
        print("Discrete Velocity Method")
        print("=" * 50)
        print(f"Cells: {self.mesh.n_cells}, faces: {self.mesh.n_faces}")
        print(f"Discrete velocities: {self.n_xi_per_dim}^3 = {self.n_xi} "
              f"in [{self.xi_min:g}, {self.xi_max:g}]")
        print(f"R = {self.gas.R:g}, Tref = {self.gas.T_ref:g}, "
              f"muRef = {self.gas.mu_ref:g}, omega = {self.omega:g}, Pr = {self.gas.Pr:g}")
        print(f"Cs = {self.cs:.6g}, nu = {self.nu:.6g}, tau = {self.tau:.6g}")
        print(f"Patches: {', '.join(repr(p) for p in self.boundary) or 'none'}")
        print(f"dt = {self.dt:g}, Co max = {max_co:.4f}, mean = {mean_co:.4f}")
