"""
Tests for the discrete velocity method solver.

Validates construction, accessors, the Courant number, the upwind face
values and the failure behaviour of a step.
"""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fvdvm import FvDVM, build_box_mesh
from fvdvm.mesh import FvMesh
from fvdvm.observables import compute_co_num
from fvdvm.config import DVMParameters, GasProperties
from fvdvm.discrete_velocity import DiscreteVelocity
from fvdvm.errors import ConfigurationError, NumericalValidityError

DVM_DICT = {'xi_max': 4.0, 'xi_min': -4.0, 'nDV': 9}
GAS_DICT = {'R': 1.0, 'omega': 0.5, 'Tref': 1.0, 'muRef': 0.05, 'Pr': 2.0 / 3.0}
DVM = DVMParameters.from_dict(DVM_DICT)
GAS = GasProperties.from_dict(GAS_DICT)
PERIODIC = (True, True, True)


def fields(mesh, seed=0):
    rng = np.random.default_rng(seed)
    rho = rng.uniform(0.9, 1.1, mesh.n_cells)
    U = rng.uniform(-0.05, 0.05, (mesh.n_cells, 3))
    return rho, U


class TestSolverSetup:
    """Test construction and accessors."""

    @pytest.fixture
    def solver(self):
        mesh = build_box_mesh((4, 4, 4), periodic=PERIODIC)
        rho, U = fields(mesh)
        return FvDVM(mesh, rho, U, DVM_DICT, GAS_DICT, 0.01)

    def test_lattice_accessors(self, solver):
        assert solver.n_xi == 729
        assert solver.n_xi_per_dim == 9
        assert solver.xi_min == -4.0
        assert solver.xi_max == 4.0
        assert len(solver.dvs) == 729

    def test_derived_constants(self, solver):
        assert np.isclose(solver.cs_sqr, 1.0)
        assert np.isclose(solver.cs, 1.0)
        assert np.isclose(solver.nu, 0.05)
        assert np.isclose(solver.tau, 0.05)
        assert solver.omega == 0.5

    def test_derived_constants_scaled_gas(self):
        gas = GasProperties(R=208.0, omega=0.81, T_ref=273.0, mu_ref=2.0e-5,
                            Pr=2.0 / 3.0, rho_ref=2.0)
        assert np.isclose(gas.cs_sqr, 208.0 * 273.0)
        assert np.isclose(gas.cs, np.sqrt(208.0 * 273.0))
        assert np.isclose(gas.nu, 1.0e-5)
        assert np.isclose(gas.tau, 1.0e-5 / (208.0 * 273.0))

    def test_dv_lookup(self, solver):
        dv = solver.dv_xyz(1, 2, 3)
        assert isinstance(dv, DiscreteVelocity)
        assert dv is solver.dv((1 * 9 + 2) * 9 + 3)
        np.testing.assert_array_equal(dv.xi, [-3.0, -2.0, -1.0])
        assert dv.weight == solver.lattice.weights[dv.index]

    def test_dv_rows_are_views(self, solver):
        dv = solver.dv(17)
        assert np.shares_memory(dv.g_vol, solver.g_vol)
        assert np.shares_memory(dv.h_surf, solver.h_surf)
        assert np.shares_memory(dv.point.xi, solver.lattice.xis)

    def test_host_fields_shared(self):
        mesh = build_box_mesh((2, 1, 1), periodic=PERIODIC)
        rho, U = fields(mesh)
        solver = FvDVM(mesh, rho, U, DVM, GAS, 0.01)
        solver.evolution()
        assert solver.rho_vol is rho
        assert solver.u_vol is U

    def test_initial_internal_energy(self, solver):
        """With zero heat flux the seeded h is K R T g."""
        np.testing.assert_allclose(solver.h_vol, 2.0 * solver.g_vol, rtol=1e-14)

    def test_print_summary(self, solver, capsys):
        solver.print_summary()
        out = capsys.readouterr().out
        assert "729" in out
        assert "Co max" in out

    def test_verbose_construction(self, capsys):
        mesh = build_box_mesh((2, 1, 1), periodic=PERIODIC)
        rho, U = fields(mesh)
        FvDVM(mesh, rho, U, DVM, GAS, 0.01, verbose=True)
        assert "Discrete Velocity Method" in capsys.readouterr().out


class TestConfiguration:
    """Test configuration errors and warnings."""

    @pytest.fixture
    def mesh(self):
        return build_box_mesh((2, 2, 1), periodic=PERIODIC)

    def test_wrong_density_shape(self, mesh):
        rho, U = fields(mesh)
        with pytest.raises(ConfigurationError):
            FvDVM(mesh, rho[:-1], U, DVM, GAS, 0.01)

    def test_wrong_velocity_shape(self, mesh):
        rho, U = fields(mesh)
        with pytest.raises(ConfigurationError):
            FvDVM(mesh, rho, U[:, :2], DVM, GAS, 0.01)

    def test_non_array_fields(self, mesh):
        rho, U = fields(mesh)
        with pytest.raises(ConfigurationError):
            FvDVM(mesh, list(rho), U, DVM, GAS, 0.01)

    def test_single_precision_fields(self, mesh):
        rho, U = fields(mesh)
        with pytest.raises(ConfigurationError):
            FvDVM(mesh, rho.astype(np.float32), U, DVM, GAS, 0.01)

    @pytest.mark.parametrize("dt", [0.0, -0.01, np.inf, np.nan])
    def test_invalid_time_step(self, mesh, dt):
        rho, U = fields(mesh)
        with pytest.raises(ConfigurationError):
            FvDVM(mesh, rho, U, DVM, GAS, dt)

    def test_time_step_setter(self, mesh):
        rho, U = fields(mesh)
        solver = FvDVM(mesh, rho, U, DVM, GAS, 0.01)
        solver.dt = 0.02
        assert solver.dt == 0.02
        with pytest.raises(ConfigurationError):
            solver.dt = -1.0

    def test_bad_resolution_in_dict(self, mesh):
        rho, U = fields(mesh)
        with pytest.raises(ConfigurationError):
            FvDVM(mesh, rho, U, dict(DVM_DICT, nDV=10), GAS, 0.01)

    def test_missing_gas_entry(self, mesh):
        rho, U = fields(mesh)
        gas = dict(GAS_DICT)
        del gas['muRef']
        with pytest.raises(ConfigurationError):
            FvDVM(mesh, rho, U, DVM, gas, 0.01)

    @pytest.mark.parametrize("key", ['R', 'Tref', 'muRef', 'Pr', 'omega'])
    def test_non_positive_gas_constant(self, key):
        with pytest.raises(ConfigurationError):
            GasProperties.from_dict(dict(GAS_DICT, **{key: 0.0}))

    def test_optional_gas_entries(self):
        gas = GasProperties.from_dict(dict(GAS_DICT, KInner=3.0, rhoRef=2.0))
        assert gas.K == 3.0
        assert gas.rho_ref == 2.0

    def test_coarse_lattice_warns(self, mesh):
        rho, U = fields(mesh)
        with pytest.warns(UserWarning, match="under-resolved"):
            FvDVM(mesh, rho, U, DVMParameters(-4.0, 4.0, 5), GAS, 0.01)

    def test_narrow_bounds_warn(self, mesh):
        rho, U = fields(mesh)
        with pytest.warns(UserWarning, match="do not cover"):
            FvDVM(mesh, rho, U, DVMParameters(-3.0, 3.0, 13), GAS, 0.01)

    def test_errors_are_value_errors(self):
        assert issubclass(ConfigurationError, ValueError)
        assert issubclass(NumericalValidityError, ValueError)


class TestCourantNumber:
    """Test the Courant number of the fastest discrete velocity."""

    def test_uniform_box(self):
        """Co = 3 dt xi_max / dx on a cubic box mesh."""
        mesh = build_box_mesh((4, 4, 4))
        rho = np.ones(mesh.n_cells)
        U = np.zeros((mesh.n_cells, 3))
        bc = {name: {'type': 'diffuseWall'} for name in mesh.patches}
        solver = FvDVM(mesh, rho, U, DVM, GAS, 0.01, boundary=bc)

        max_co, mean_co = solver.get_co_num()

        assert np.isclose(max_co, 3 * 0.01 * 4.0 / 0.25)
        assert np.isclose(mean_co, max_co)

    def test_scales_with_time_step(self):
        mesh = build_box_mesh((4, 2, 1), periodic=PERIODIC)
        rho = np.ones(mesh.n_cells)
        U = np.zeros((mesh.n_cells, 3))
        solver = FvDVM(mesh, rho, U, DVM, GAS, 0.01)
        co_1, _ = solver.get_co_num()
        solver.dt = 0.02
        co_2, _ = solver.get_co_num()
        assert np.isclose(co_2, 2.0 * co_1)

    def test_anisotropic_box(self):
        """Max over cells and volume-weighted mean."""
        mesh = build_box_mesh((2, 1, 1), lengths=(1.0, 1.0, 1.0), periodic=PERIODIC)
        rho = np.ones(mesh.n_cells)
        U = np.zeros((mesh.n_cells, 3))
        solver = FvDVM(mesh, rho, U, DVM, GAS, 0.01)
        # dx = 0.5, dy = dz = 1
        expected = 0.5 * 0.01 * 4.0 * 2.0 * (1.0 / 0.5 + 1.0 / 1.0 + 1.0 / 1.0)
        max_co, mean_co = solver.get_co_num()
        assert np.isclose(max_co, expected)
        assert np.isclose(mean_co, expected)

    @pytest.fixture
    def skewed_pair(self):
        """Two unit cells sharing the face S = (1, -1, 0)."""
        return FvMesh(
            cell_volumes=[1.0, 1.0],
            cell_centres=[[0.0, 0.0, 0.0], [1.0, -1.0, 0.0]],
            face_areas=[[1.0, -1.0, 0.0]],
            face_centres=[[0.5, -0.5, 0.0]],
            owner=[0],
            neighbour=[1],
        )

    def test_skewed_face_asymmetric_bounds(self, skewed_pair):
        """max |xi . S| over [-2, 6]^3 is 8, at xi = (6, -2, z)."""
        max_co, mean_co = compute_co_num(skewed_pair, -2.0, 6.0, 0.01)
        assert np.isclose(max_co, 0.5 * 0.01 * 8.0)
        assert np.isclose(mean_co, max_co)

    def test_skewed_face_matches_lattice_maximum(self, skewed_pair):
        rho = np.ones(2)
        U = np.zeros((2, 3))
        solver = FvDVM(skewed_pair, rho, U, DVMParameters(-4.0, 12.0, 17), GAS, 0.01)

        phi = np.abs(solver.xis @ skewed_pair.face_areas.T).max(axis=0)
        assert np.isclose(phi[0], 16.0)

        max_co, _ = solver.get_co_num()
        assert np.isclose(max_co, 0.5 * 0.01 * 16.0)


class TestUpwind:
    """Test per-velocity upwind face values."""

    @pytest.fixture
    def solver(self):
        mesh = build_box_mesh((4, 3, 1), periodic=(False, True, True))
        rho, U = fields(mesh, seed=4)
        bc = {'xmin': {'type': 'diffuseWall'}, 'xmax': {'type': 'zeroGradient'}}
        return FvDVM(mesh, rho, U, DVM, GAS, 0.01, boundary=bc)

    def test_internal_faces(self, solver):
        solver.evolution()
        mesh = solver.mesh
        for i in (0, 40, 364, 500, 728):
            xn = mesh.face_areas @ solver.xis[i]
            for f in mesh.internal_faces:
                src = mesh.owner[f] if xn[f] >= 0.0 else mesh.neighbour[f]
                assert solver.g_surf[i, f] == solver.g_vol[i, src]
                assert solver.h_surf[i, f] == solver.h_vol[i, src]

    def test_outgoing_boundary_faces(self, solver):
        solver.evolution()
        mesh = solver.mesh
        for i in (0, 364, 728):
            xn = mesh.face_areas @ solver.xis[i]
            for f in mesh.boundary_faces:
                if xn[f] >= 0.0:
                    assert solver.g_surf[i, f] == solver.g_vol[i, mesh.owner[f]]

    def test_per_velocity_update_matches_kernel(self, solver):
        g_surf = solver.g_surf.copy()
        solver.g_surf[:] = 0.0
        for dv in solver.dvs:
            dv.update_faces()
        internal = solver.mesh.internal_faces
        np.testing.assert_array_equal(solver.g_surf[:, internal], g_surf[:, internal])


class TestFastPath:
    """Numba kernels agree with the per-velocity path."""

    def test_fast_equals_standard(self):
        mesh = build_box_mesh((4, 3, 1), periodic=(False, False, True))
        bc = {
            'xmin': {'type': 'diffuseWall', 'U': (0.0, 0.1, 0.0)},
            'xmax': {'type': 'diffuseWall'},
            'ymin': {'type': 'farField', 'rho': 1.05},
            'ymax': {'type': 'zeroGradient'},
        }
        rho, U = fields(mesh, seed=9)

        fast = FvDVM(mesh, rho.copy(), U.copy(), DVM, GAS, 0.01, boundary=bc)
        standard = FvDVM(mesh, rho.copy(), U.copy(), DVM, GAS, 0.01, boundary=bc,
                         use_fast=False)

        for _ in range(4):
            fast.evolution()
            standard.evolution()

        np.testing.assert_allclose(fast.rho, standard.rho, rtol=1e-10)
        np.testing.assert_allclose(fast.U, standard.U, rtol=1e-8, atol=1e-12)
        np.testing.assert_allclose(fast.q, standard.q, rtol=1e-8, atol=1e-12)
        np.testing.assert_allclose(fast.g_vol, standard.g_vol, rtol=1e-10, atol=1e-16)
        for name in bc:
            np.testing.assert_allclose(fast.rho_boundary[name], standard.rho_boundary[name],
                                       rtol=1e-10)

    def test_fast_path_skips_per_velocity_projections(self):
        mesh = build_box_mesh((4, 4, 4), periodic=PERIODIC)
        rho, U = fields(mesh)
        solver = FvDVM(mesh, rho, U, DVM, GAS, 0.01)
        solver.evolution()

        assert not any('xi_dot_sf' in vars(dv) for dv in solver.dvs)

    def test_standard_path_builds_projections_on_use(self):
        mesh = build_box_mesh((4, 1, 1), periodic=PERIODIC)
        rho, U = fields(mesh)
        solver = FvDVM(mesh, rho, U, DVM, GAS, 0.01, use_fast=False)
        solver.evolution()

        dv = solver.dv(100)
        assert 'xi_dot_sf' in vars(dv)
        np.testing.assert_array_equal(dv.xi_dot_sf, mesh.face_areas @ dv.xi)


class TestStepFailure:
    """A failing step raises and leaves the host fields alone."""

    def test_negative_density_detected(self):
        mesh = build_box_mesh((4, 1, 1), periodic=PERIODIC)
        rho = np.ones(mesh.n_cells)
        U = np.zeros((mesh.n_cells, 3))
        solver = FvDVM(mesh, rho, U, DVM, GAS, 0.01)
        solver.evolution()

        rho_before = solver.rho.copy()
        U_before = solver.U.copy()
        solver.g_vol[:, 0] *= -1.0

        with pytest.raises(NumericalValidityError):
            solver.evolution()

        np.testing.assert_array_equal(solver.rho, rho_before)
        np.testing.assert_array_equal(solver.U, U_before)
        assert solver.time_index == 1

    def test_non_physical_host_density(self):
        mesh = build_box_mesh((2, 1, 1), periodic=PERIODIC)
        rho = np.ones(mesh.n_cells)
        U = np.zeros((mesh.n_cells, 3))
        solver = FvDVM(mesh, rho, U, DVM, GAS, 0.01)
        solver.rho[1] = -0.5

        with pytest.raises(NumericalValidityError):
            solver.evolution()
        assert solver.time_index == 0

    def test_unresolved_velocity(self):
        mesh = build_box_mesh((2, 1, 1), periodic=PERIODIC)
        rho = np.ones(mesh.n_cells)
        U = np.zeros((mesh.n_cells, 3))
        U[0, 0] = 50.0
        with pytest.raises(NumericalValidityError):
            FvDVM(mesh, rho, U, DVM, GAS, 0.01)

    def test_snapshot_is_read_only(self):
        mesh = build_box_mesh((2, 1, 1), periodic=PERIODIC)
        rho, U = fields(mesh)
        solver = FvDVM(mesh, rho, U, DVM, GAS, 0.01)
        snapshot = solver._take_snapshot()
        with pytest.raises(ValueError):
            snapshot.rho[0] = 2.0
        assert not np.shares_memory(snapshot.U, solver.U)


class TestDiagnostics:
    """Test the run helper and derived observables."""

    @pytest.fixture
    def solver(self):
        mesh = build_box_mesh((4, 1, 1), periodic=PERIODIC)
        rho, U = fields(mesh, seed=1)
        return FvDVM(mesh, rho, U, DVM, GAS, 0.01)

    def test_run(self, solver, capsys):
        elapsed = solver.run(4, report_interval=2, verbose=True)
        out = capsys.readouterr().out
        assert solver.time_index == 4
        assert "Step 2" in out
        assert "Step 4" in out
        assert elapsed >= 0.0

    def test_run_quiet(self, solver, capsys):
        solver.run(2, verbose=False)
        assert capsys.readouterr().out == ""
        assert solver.time_index == 2

    def test_heat_flux_copy(self, solver):
        solver.evolution()
        q = solver.heat_flux()
        assert q.shape == (4, 3)
        q[:] = 1.0
        assert not np.any(solver.q == 1.0)

    def test_stress_traceless(self, solver):
        solver.evolution()
        sigma = solver.stress()
        assert sigma.shape == (4, 3, 3)
        np.testing.assert_allclose(np.trace(sigma, axis1=1, axis2=2), 0.0, atol=1e-12)
        np.testing.assert_allclose(sigma, np.transpose(sigma, (0, 2, 1)), atol=1e-14)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
