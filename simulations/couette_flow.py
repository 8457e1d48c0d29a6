"""
Couette Flow Simulation

Planar shear flow between two diffuse walls for validation against the
continuum solution.

The walls sit at x = 0 and x = H and slide in the y-direction with
velocities -U_w and +U_w. In the continuum (slip-free) limit the steady
velocity profile is linear:

    u_y(x) = U_w * (2x/H - 1)

At finite Knudsen number the gas slips at diffuse walls and the profile
becomes

    u_y(x) = U_w * (2x/H - 1) * H / (H + 2 * zeta)

with slip length zeta ~ 1.1466 * lambda (BGK) and mean free path

    lambda = mu / p * sqrt(pi R T / 2)
"""

import numpy as np
import matplotlib.pyplot as plt
import time
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fvdvm import FvDVM, build_box_mesh
from fvdvm.config import DVMParameters, GasProperties

SLIP_COEFFICIENT = 1.1466


def analytical_couette(x, H, wall_speed, slip_length=0.0):
    """
    Analytical Couette profile.

    Parameters
    ----------
    x : ndarray
        Wall-normal coordinates (0 to H)
    H : float
        Channel width
    wall_speed : float
        Speed of each wall
    slip_length : float
        Velocity slip length at the walls

    Returns
    -------
    uy : ndarray
        Tangential velocity profile
    """
    return wall_speed * (2.0 * x / H - 1.0) * H / (H + 2.0 * slip_length)


def mean_free_path(gas, rho=1.0):
    """Hard sphere mean free path at the reference temperature."""
    p = rho * gas.R * gas.T_ref
    return gas.mu_ref / p * np.sqrt(np.pi * gas.R * gas.T_ref / 2.0)


class CouetteSolver:
    """
    Solver for planar Couette flow.

    Parameters
    ----------
    n_cells : int
        Cells across the channel
    wall_speed : float
        Wall speed U_w
    mu_ref : float
        Reference viscosity
    n_dv : int
        Discrete velocities per direction (4k + 1)
    courant : float
        Target maximum Courant number
    use_fast : bool
        Use Numba kernels
    """

    def __init__(self, n_cells, wall_speed, mu_ref, n_dv=17, courant=0.5, use_fast=True):
        self.n_cells = n_cells
        self.wall_speed = wall_speed
        self.H = 1.0

        self.gas = GasProperties(R=1.0, omega=0.5, T_ref=1.0, mu_ref=mu_ref, Pr=2.0 / 3.0)
        dvm = DVMParameters(-4.0, 4.0, n_dv)

        self.mesh = build_box_mesh((n_cells, 1, 1), lengths=(self.H, 1.0, 1.0),
                                   periodic=(False, True, True))
        self.rho = np.ones(n_cells, dtype=np.float64)
        self.U = np.zeros((n_cells, 3), dtype=np.float64)

        boundary = {
            'xmin': {'type': 'diffuseWall', 'U': (0.0, -wall_speed, 0.0)},
            'xmax': {'type': 'diffuseWall', 'U': (0.0, wall_speed, 0.0)},
        }
        self.solver = FvDVM(self.mesh, self.rho, self.U, dvm, self.gas, 1.0,
                            boundary=boundary, use_fast=use_fast)

        # Rescale dt to the target Courant number
        co_unit, _ = self.solver.get_co_num()
        self.solver.dt = courant / co_unit

        self.knudsen = mean_free_path(self.gas) / self.H

    @property
    def step_count(self):
        return self.solver.time_index

    def get_analytical_profile(self, with_slip=True):
        """
        Analytical velocity profile at the cell centres.

        Returns
        -------
        x : ndarray
            Cell centre coordinates
        uy_analytical : ndarray
            Analytical velocity profile
        """
        x = self.mesh.cell_centres[:, 0]
        zeta = SLIP_COEFFICIENT * self.knudsen * self.H if with_slip else 0.0
        return x, analytical_couette(x, self.H, self.wall_speed, zeta)

    def get_numerical_profile(self):
        """
        Returns
        -------
        x : ndarray
            Cell centre coordinates
        uy_numerical : ndarray
            Numerical velocity profile
        """
        return self.mesh.cell_centres[:, 0], self.U[:, 1].copy()

    def run(self, num_steps, check_interval=200, tolerance=1e-7, verbose=True):
        """
        Run simulation until steady state or max steps.

        Parameters
        ----------
        num_steps : int
            Maximum number of timesteps
        check_interval : int
            Steps between convergence checks
        tolerance : float
            Convergence tolerance for velocity change
        verbose : bool
            Print progress information

        Returns
        -------
        converged : bool
            Whether simulation converged
        """
        uy_old = self.U[:, 1].copy()

        for step in range(num_steps):
            self.solver.evolution()

            if (step + 1) % check_interval == 0:
                uy_change = np.max(np.abs(self.U[:, 1] - uy_old))
                uy_old = self.U[:, 1].copy()

                if verbose:
                    max_co, _ = self.solver.get_co_num()
                    print(f"Step {step + 1}: max(uy) = {np.max(self.U[:, 1]):.6f}, "
                          f"change = {uy_change:.2e}, Co = {max_co:.3f}")

                if uy_change < tolerance:
                    if verbose:
                        print(f"Converged at step {step + 1}")
                    return True

        if verbose:
            print(f"Did not converge after {num_steps} steps")
        return False

    def compute_error(self, with_slip=True):
        """
        Compute L2 error between numerical and analytical solution.

        Returns
        -------
        l2_error : float
            L2 norm of the error
        l2_relative : float
            Relative L2 error
        """
        _, uy_analytical = self.get_analytical_profile(with_slip)
        _, uy_numerical = self.get_numerical_profile()

        diff = uy_numerical - uy_analytical
        l2_error = np.sqrt(np.mean(diff**2))
        l2_relative = l2_error / np.sqrt(np.mean(uy_analytical**2))

        return l2_error, l2_relative

    def plot_comparison(self, save_path=None):
        """
        Plot numerical vs analytical velocity profile.

        Parameters
        ----------
        save_path : str, optional
            Path to save figure
        """
        x, uy_slip = self.get_analytical_profile(with_slip=True)
        _, uy_no_slip = self.get_analytical_profile(with_slip=False)
        _, uy_numerical = self.get_numerical_profile()
        _, l2_relative = self.compute_error()

        fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))

        ax1.plot(uy_no_slip, x, 'k--', linewidth=1, label='Continuum (no slip)')
        ax1.plot(uy_slip, x, 'b-', linewidth=2, label='Continuum with slip')
        ax1.plot(uy_numerical, x, 'ro', markersize=4, label='DVM')
        ax1.set_xlabel('Velocity $u_y$')
        ax1.set_ylabel('Wall-normal coordinate $x$')
        ax1.set_title(f'Couette Flow (Kn = {self.knudsen:.3g})')
        ax1.legend()
        ax1.grid(True, alpha=0.3)

        ax2.plot(uy_numerical - uy_slip, x, 'k-', linewidth=1.5)
        ax2.axvline(x=0, color='gray', linestyle='--', alpha=0.5)
        ax2.set_xlabel('Error $(u_{DVM} - u_{analytical})$')
        ax2.set_ylabel('Wall-normal coordinate $x$')
        ax2.set_title(f'Error Distribution (L2 relative = {l2_relative:.2e})')
        ax2.grid(True, alpha=0.3)

        plt.tight_layout()

        if save_path:
            os.makedirs(os.path.dirname(save_path) or '.', exist_ok=True)
            plt.savefig(save_path, dpi=150, bbox_inches='tight')
            print(f"Saved figure to {save_path}")

        plt.show()

        return fig


def run_couette_simulation(n_cells=32, wall_speed=0.1, mu_ref=0.005, n_dv=17,
                           max_steps=20000, verbose=True):
    """
    Run Couette flow simulation and validate.

    Returns
    -------
    couette : CouetteSolver
        Solver object with results
    """
    couette = CouetteSolver(n_cells, wall_speed, mu_ref, n_dv=n_dv)

    if verbose:
        print("Couette Flow Simulation")
        print("=" * 50)
        print(f"Cells: {n_cells}, DVs: {n_dv}^3")
        print(f"Wall speed: {wall_speed}, muRef: {mu_ref}, Kn: {couette.knudsen:.4g}")
        print(f"dt: {couette.solver.dt:.4g}")
        print()

    start = time.perf_counter()
    couette.run(max_steps, verbose=verbose)
    elapsed = time.perf_counter() - start

    if verbose:
        print()
        print(f"Simulation time: {elapsed:.2f}s")
        print(f"Steps: {couette.step_count}")
        print(f"Mass: {couette.solver.total_mass():.12g}")

        l2_error, l2_relative = couette.compute_error()
        print(f"L2 Error: {l2_error:.6e}")
        print(f"L2 Relative Error: {l2_relative:.4%}")

    return couette


def knudsen_study(viscosities=None, n_cells=32, wall_speed=0.1, max_steps=20000):
    """
    Compare the wall slip over a range of Knudsen numbers.

    Returns
    -------
    results : dict
        Knudsen numbers, measured and predicted wall slip
    """
    if viscosities is None:
        viscosities = [0.002, 0.005, 0.01, 0.02]

    print("Knudsen Number Study")
    print("=" * 50)

    results = {'kn': [], 'slip': [], 'slip_predicted': []}

    for mu_ref in viscosities:
        couette = CouetteSolver(n_cells, wall_speed, mu_ref)
        couette.run(max_steps, verbose=False)

        x, uy = couette.get_numerical_profile()
        # Extrapolate the bulk profile to the wall
        slope, intercept = np.polyfit(x[n_cells // 4:-n_cells // 4], uy[n_cells // 4:-n_cells // 4], 1)
        slip = wall_speed - (slope * couette.H + intercept)
        predicted = wall_speed - analytical_couette(couette.H, couette.H, wall_speed,
                                                    SLIP_COEFFICIENT * couette.knudsen)

        results['kn'].append(couette.knudsen)
        results['slip'].append(slip)
        results['slip_predicted'].append(predicted)

        print(f"  Kn = {couette.knudsen:.4f}, slip = {slip:.4e}, predicted = {predicted:.4e}")

    return results


if __name__ == "__main__":
    couette = run_couette_simulation()

    couette.plot_comparison(save_path='results/validation/couette_validation.png')

    print("\n")
    results = knudsen_study()
