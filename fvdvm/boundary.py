"""
Boundary Condition Handlers

Boundary patches for the discrete velocity method:
- Diffuse (Maxwell) wall, fully accommodating
- Far field (fixed equilibrium inflow)
- Zero gradient (open outflow)

Periodic directions are handled by the mesh connectivity.

Each patch is a strategy object chosen once at setup from its ``type``
keyword. After the upwind face interpolation, a patch fills the face
values of the incoming directions (xi . S_f < 0) of its faces and returns
the boundary density of those faces.

Diffuse wall: the wall re-emits every molecule that hits it with the wall
Maxwellian M_w (unit density, wall velocity U_w, wall temperature T_w).
The wall density follows from zero net mass flux:

    rho_w = sum_{xi.S > 0} w (xi . S) g_f  /  sum_{xi.S < 0} w |xi . S| M_w
"""

import warnings

import numpy as np

from .equilibrium import maxwellian
from .errors import ConfigurationError


class BoundaryPatch:
    """
    Base class for boundary patches.

    Parameters
    ----------
    name : str
        Patch name
    faces : ndarray
        Boundary face indices
    mesh : FvMesh
    lattice : VelocityLattice
    gas : GasProperties
    """

    type_name = None

    def __init__(self, name, faces, mesh, lattice, gas):
        self.name = name
        self.faces = np.asarray(faces, dtype=np.int64)
        self.owner = mesh.owner[self.faces]
        self.gas = gas
        self.weights = lattice.weights
        # shape (N, n_patch_faces)
        self.xi_dot_sf = lattice.xis @ mesh.face_areas[self.faces].T
        self.incoming = self.xi_dot_sf < 0.0

    def correct(self, g_surf, h_surf, g_vol, h_vol):
        """
        Fill incoming face values of this patch (in place).

        Parameters
        ----------
        g_surf, h_surf : ndarray
            Face values, shape (N, n_faces). Modified in place.
        g_vol, h_vol : ndarray
            Cell values, shape (N, n_cells)

        Returns
        -------
        rho_b : ndarray
            Boundary density per patch face
        """
        raise NotImplementedError

    def _write_incoming(self, g_surf, h_surf, g_in, h_in):
        g_block = g_surf[:, self.faces]
        h_block = h_surf[:, self.faces]
        g_surf[:, self.faces] = np.where(self.incoming, g_in, g_block)
        h_surf[:, self.faces] = np.where(self.incoming, h_in, h_block)

    def mass_flux(self, g_surf):
        """Net outward mass flux through each patch face."""
        return self.weights @ (self.xi_dot_sf * g_surf[:, self.faces])

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r}, faces={len(self.faces)})"


def _vector(value, name):
    value = np.asarray(value, dtype=np.float64)
    if value.shape != (3,):
        raise ConfigurationError(f"{name} must have three components, got {value}")
    return value


class DiffuseWall(BoundaryPatch):
    """
    Fully diffuse (Maxwell) wall.

    Parameters
    ----------
    U : array_like
        Wall velocity (default at rest)
    T : float
        Wall temperature (default Tref)
    """

    type_name = 'diffuseWall'

    def __init__(self, name, faces, mesh, lattice, gas, U=(0.0, 0.0, 0.0), T=None):
        super().__init__(name, faces, mesh, lattice, gas)
        self.U_wall = _vector(U, f"{name}.U")
        self.T_wall = float(gas.T_ref if T is None else T)
        if self.T_wall <= 0.0:
            raise ConfigurationError(f"{name}.T must be positive, got {self.T_wall}")

        n_faces = len(self.faces)
        self.M_wall = maxwellian(
            np.ones(n_faces), np.tile(self.U_wall, (n_faces, 1)),
            self.T_wall, lattice.xis, gas.R
        )
        self.inflow_norm = self.weights @ (np.maximum(-self.xi_dot_sf, 0.0) * self.M_wall)
        if np.any(self.inflow_norm <= 0.0):
            raise ConfigurationError(
                f"Patch '{name}': no lattice velocity enters the domain through "
                f"the wall, check the velocity bounds"
            )

    def correct(self, g_surf, h_surf, g_vol, h_vol):
        outflow = self.weights @ (
            np.maximum(self.xi_dot_sf, 0.0) * g_surf[:, self.faces]
        )
        rho_wall = outflow / self.inflow_norm

        g_in = rho_wall * self.M_wall
        h_in = self.gas.K * self.gas.R * self.T_wall * g_in
        self._write_incoming(g_surf, h_surf, g_in, h_in)
        return rho_wall


class FarField(BoundaryPatch):
    """
    Far field: incoming molecules follow a fixed Maxwellian.

    Parameters
    ----------
    rho : float
        Far-field density (default rhoRef)
    U : array_like
        Far-field velocity
    T : float
        Far-field temperature (default Tref)
    """

    type_name = 'farField'

    def __init__(self, name, faces, mesh, lattice, gas, rho=None, U=(0.0, 0.0, 0.0), T=None):
        super().__init__(name, faces, mesh, lattice, gas)
        self.rho_inf = float(gas.rho_ref if rho is None else rho)
        self.U_inf = _vector(U, f"{name}.U")
        self.T_inf = float(gas.T_ref if T is None else T)
        if self.rho_inf <= 0.0 or self.T_inf <= 0.0:
            raise ConfigurationError(f"{name}: rho and T must be positive")

        n_faces = len(self.faces)
        self.g_inf = maxwellian(
            np.full(n_faces, self.rho_inf), np.tile(self.U_inf, (n_faces, 1)),
            self.T_inf, lattice.xis, gas.R
        )
        self.h_inf = gas.K * gas.R * self.T_inf * self.g_inf

    def correct(self, g_surf, h_surf, g_vol, h_vol):
        self._write_incoming(g_surf, h_surf, self.g_inf, self.h_inf)
        return np.full(len(self.faces), self.rho_inf)


class ZeroGradient(BoundaryPatch):
    """Open boundary: incoming values copied from the owner cell."""

    type_name = 'zeroGradient'

    def correct(self, g_surf, h_surf, g_vol, h_vol):
        self._write_incoming(
            g_surf, h_surf, g_vol[:, self.owner], h_vol[:, self.owner]
        )
        return self.weights @ g_surf[:, self.faces]


BOUNDARY_TYPES = {
    'diffuseWall': DiffuseWall,
    'maxwellWall': DiffuseWall,
    'farField': FarField,
    'zeroGradient': ZeroGradient,
}


class BoundaryConditions:
    """
    Manager class for boundary patches.

    Builds one strategy per mesh patch and applies all of them in turn.

    Parameters
    ----------
    mesh : FvMesh
    lattice : VelocityLattice
    gas : GasProperties
    patch_types : dict, optional
        Patch name -> {"type": ..., **parameters}. Mesh patches missing
        from ``patch_types`` default to zeroGradient.
    """

    def __init__(self, mesh, lattice, gas, patch_types=None):
        patch_types = dict(patch_types or {})

        unknown = set(patch_types) - set(mesh.patches)
        if unknown:
            raise ConfigurationError(f"Boundary condition for unknown patch(es): {sorted(unknown)}")
        if len(mesh.unpatched_faces):
            raise ConfigurationError(
                f"{len(mesh.unpatched_faces)} boundary face(s) belong to no patch"
            )

        self.patches = {}
        for name, faces in mesh.patches.items():
            if name not in patch_types:
                warnings.warn(
                    f"No boundary condition given for patch '{name}', using zeroGradient"
                )
                params = {'type': 'zeroGradient'}
            else:
                params = dict(patch_types[name])

            bc_type = params.pop('type', None)
            if bc_type not in BOUNDARY_TYPES:
                raise ConfigurationError(
                    f"Patch '{name}': unknown boundary type {bc_type!r}, "
                    f"expected one of {sorted(BOUNDARY_TYPES)}"
                )
            try:
                self.patches[name] = BOUNDARY_TYPES[bc_type](
                    name, faces, mesh, lattice, gas, **params
                )
            except TypeError as exc:
                raise ConfigurationError(f"Patch '{name}': {exc}") from None

    def __iter__(self):
        return iter(self.patches.values())

    def __len__(self):
        return len(self.patches)

    def apply(self, g_surf, h_surf, g_vol, h_vol):
        """
        Apply all boundary patches.

        Returns
        -------
        rho_boundary : dict
            Patch name -> boundary density per face
        """
        return {
            name: patch.correct(g_surf, h_surf, g_vol, h_vol)
            for name, patch in self.patches.items()
        }
