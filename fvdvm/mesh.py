"""
Finite Volume Mesh

Static geometry and connectivity consumed by the discrete velocity solver.

Indexing conventions:
- Cell arrays (cell_volumes, cell_centres) use cell indexing 0..n_cells-1.
- Face arrays (face_areas, owner, neighbour) use face indexing 0..n_faces-1.
- face_areas[f] is the face area vector S_f, pointing out of owner[f].
- neighbour[f] = -1 marks a boundary face; boundary faces are grouped into
  named patches.

The solver only reads this data. It does not build or modify meshes; the
box builder below exists so the solver can be driven without an external
mesh framework.
"""

import numpy as np
import scipy.sparse as sp

from .errors import ConfigurationError


class FvMesh:
    """
    Collocated finite volume mesh.

    Parameters
    ----------
    cell_volumes : ndarray
        Shape (n_cells,)
    cell_centres : ndarray
        Shape (n_cells, 3)
    face_areas : ndarray
        Face area vectors S_f, shape (n_faces, 3)
    face_centres : ndarray
        Shape (n_faces, 3)
    owner : ndarray
        Owner cell of each face, shape (n_faces,)
    neighbour : ndarray
        Neighbour cell of each face, -1 on boundary faces
    patches : dict
        Patch name -> boundary face indices
    """

    def __init__(self, cell_volumes, cell_centres, face_areas, face_centres,
                 owner, neighbour, patches=None):
        self.cell_volumes = np.asarray(cell_volumes, dtype=np.float64)
        self.cell_centres = np.asarray(cell_centres, dtype=np.float64)
        self.face_areas = np.ascontiguousarray(face_areas, dtype=np.float64)
        self.face_centres = np.asarray(face_centres, dtype=np.float64)
        self.owner = np.ascontiguousarray(owner, dtype=np.int64)
        self.neighbour = np.ascontiguousarray(neighbour, dtype=np.int64)
        self.patches = {
            name: np.asarray(faces, dtype=np.int64)
            for name, faces in (patches or {}).items()
        }

        self._check()

        self.internal_faces = np.flatnonzero(self.neighbour >= 0)
        self.boundary_faces = np.flatnonzero(self.neighbour < 0)
        self.inv_volumes = 1.0 / self.cell_volumes

        # Signed face -> cell incidence: +1 for owner, -1 for neighbour
        rows = np.concatenate([self.owner, self.neighbour[self.internal_faces]])
        cols = np.concatenate([np.arange(self.n_faces), self.internal_faces])
        vals = np.concatenate([
            np.ones(self.n_faces),
            -np.ones(len(self.internal_faces)),
        ])
        self.face_cell_matrix = sp.csr_matrix(
            (vals, (rows, cols)), shape=(self.n_cells, self.n_faces)
        )

    def _check(self):
        n_cells = len(self.cell_volumes)
        n_faces = len(self.owner)

        if np.any(self.cell_volumes <= 0.0):
            raise ConfigurationError("Cell volumes must be positive")
        if self.face_areas.shape != (n_faces, 3) or len(self.neighbour) != n_faces:
            raise ConfigurationError("Face arrays must all have n_faces entries")
        if np.any((self.owner < 0) | (self.owner >= n_cells)):
            raise ConfigurationError("Face owner index out of range")
        if np.any(self.neighbour >= n_cells):
            raise ConfigurationError("Face neighbour index out of range")

        boundary = set(np.flatnonzero(self.neighbour < 0).tolist())
        listed = set()
        for name, faces in self.patches.items():
            faces_set = set(faces.tolist())
            if not faces_set <= boundary:
                raise ConfigurationError(f"Patch '{name}' contains internal faces")
            if faces_set & listed:
                raise ConfigurationError(f"Patch '{name}' overlaps another patch")
            listed |= faces_set

    @property
    def n_cells(self):
        return len(self.cell_volumes)

    @property
    def n_faces(self):
        return len(self.owner)

    @property
    def unpatched_faces(self):
        """Boundary faces not assigned to any patch."""
        listed = np.concatenate(list(self.patches.values())) if self.patches else []
        return np.setdiff1d(self.boundary_faces, listed)

    def surface_sum(self, phi):
        """
        Net outflow per cell, sum_f sign * phi_f.

        Parameters
        ----------
        phi : ndarray
            Face fluxes, shape (n_faces,) or (N, n_faces)

        Returns
        -------
        sums : ndarray
            Shape (n_cells,) or (N, n_cells)
        """
        if phi.ndim == 1:
            return self.face_cell_matrix @ phi
        return (self.face_cell_matrix @ phi.T).T

    def surface_integrate(self, phi):
        """Net outflow per unit volume, sum_f sign * phi_f / V."""
        return self.surface_sum(phi) * self.inv_volumes

    def abs_surface_sum(self, phi):
        """Sum of |phi_f| over all faces of each cell, shape (n_cells,)."""
        phi = np.abs(phi)
        internal = self.internal_faces
        return (
            np.bincount(self.owner, weights=phi, minlength=self.n_cells)
            + np.bincount(self.neighbour[internal], weights=phi[internal],
                          minlength=self.n_cells)
        )


def build_box_mesh(shape, lengths=(1.0, 1.0, 1.0), periodic=(False, False, False)):
    """
    Structured hexahedral mesh of an axis-aligned box.

    Parameters
    ----------
    shape : tuple of int
        Cells per direction (nx, ny, nz)
    lengths : tuple of float
        Box size (Lx, Ly, Lz)
    periodic : tuple of bool
        Wrap each direction; periodic faces become internal faces

    Returns
    -------
    mesh : FvMesh
        Patches ``xmin``, ``xmax``, ``ymin``, ``ymax``, ``zmin``, ``zmax``
        for the non-periodic directions.
    """
    shape = tuple(int(n) for n in shape)
    if len(shape) != 3 or min(shape) < 1:
        raise ConfigurationError(f"Box mesh needs three positive cell counts, got {shape}")
    lengths = np.asarray(lengths, dtype=np.float64)
    if lengths.shape != (3,) or np.any(lengths <= 0.0):
        raise ConfigurationError(f"Box lengths must be three positive numbers, got {lengths}")

    nx, ny, nz = shape
    spacing = lengths / np.array(shape)
    volume = float(np.prod(spacing))

    idx = np.arange(nx * ny * nz).reshape(shape)
    grid = np.stack(np.meshgrid(
        np.arange(nx), np.arange(ny), np.arange(nz), indexing='ij'
    ), axis=-1).reshape(-1, 3)
    cell_centres = (grid + 0.5) * spacing

    owners, neighbours, areas, centres = [], [], [], []
    patches = {}
    face_count = 0

    for d, axis_name in enumerate('xyz'):
        area = volume / spacing[d]
        normal = np.zeros(3)
        normal[d] = area
        n = shape[d]

        # Internal faces between slice k and k + 1 (and wrap when periodic)
        n_internal = n if periodic[d] else n - 1
        for k in range(n_internal):
            own = np.take(idx, k, axis=d).ravel()
            nbr = np.take(idx, (k + 1) % n, axis=d).ravel()
            cen = cell_centres[own].copy()
            cen[:, d] = (k + 1) * spacing[d]
            owners.append(own)
            neighbours.append(nbr)
            areas.append(np.tile(normal, (len(own), 1)))
            centres.append(cen)
            face_count += len(own)

        if periodic[d]:
            continue

        for side, k, sign in (('min', 0, -1.0), ('max', n - 1, 1.0)):
            own = np.take(idx, k, axis=d).ravel()
            cen = cell_centres[own].copy()
            cen[:, d] = 0.0 if side == 'min' else lengths[d]
            owners.append(own)
            neighbours.append(np.full(len(own), -1))
            areas.append(np.tile(sign * normal, (len(own), 1)))
            centres.append(cen)
            patches[f'{axis_name}{side}'] = np.arange(face_count, face_count + len(own))
            face_count += len(own)

    return FvMesh(
        cell_volumes=np.full(nx * ny * nz, volume),
        cell_centres=cell_centres,
        face_areas=np.concatenate(areas),
        face_centres=np.concatenate(centres),
        owner=np.concatenate(owners),
        neighbour=np.concatenate(neighbours),
        patches=patches,
    )
