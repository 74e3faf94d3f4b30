"""
Comparison utilities for checking simulation results.

This module compares Monte Carlo results against the diffusion
approximation and against each other (for example Plücker vs Havel
tracing, or runs with different thread counts) to help diagnose issues.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np
from scipy import integrate

from ..core.data_classes import Medium, RunStatistics, SimulationResult
from ..core.mesh import TetMesh


def effective_reflection(n_rel: float) -> float:
    """Empirical effective reflection coefficient of a boundary, n_rel = n_in / n_out."""
    r_eff = -1.440 / (n_rel * n_rel) + 0.710 / n_rel + 0.668 + 0.0636 * n_rel
    return min(max(r_eff, 0.0), 0.99)


def equivalent_sphere_radius(volume: float) -> float:
    return (3.0 * volume / (4.0 * math.pi)) ** (1.0 / 3.0)


def diffusion_absorbed_fraction(
    mua: float,
    mus: float,
    g: float,
    radius: float,
    n: float = 1.0,
    n_out: float = 1.0,
) -> float:
    """Absorbed fraction of a point source at the centre of a diffusive sphere.

    Diffusion theory with an extrapolated zero-fluence boundary at
    ``radius + 2 A D``:

        phi(r) = sinh(mu_eff (R_e - r)) / (4 pi D r sinh(mu_eff R_e))

    and the absorbed fraction is ``mua * integral(phi dV)`` over the real
    sphere. The value tends to 1 as the radius grows.

    Parameters
    ----------
    mua, mus : float
        Absorption and scattering coefficients (1/mm).
    g : float
        Anisotropy factor.
    radius : float
        Sphere radius (mm).
    n, n_out : float
        Refractive index inside and outside.
    """
    if mua <= 0.0:
        return 0.0
    musp = mus * (1.0 - g)
    diff = 1.0 / (3.0 * (mua + musp))
    mu_eff = math.sqrt(mua / diff)
    r_eff = effective_reflection(n / n_out)
    a_coef = (1.0 + r_eff) / (1.0 - r_eff)
    r_ext = radius + 2.0 * a_coef * diff
    denom = math.sinh(mu_eff * r_ext)

    def integrand(r):
        return r * math.sinh(mu_eff * (r_ext - r)) / denom

    value, _ = integrate.quad(integrand, 0.0, radius)
    return float(mua / diff * value)


def compare_with_diffusion(
    result: SimulationResult,
    mesh: TetMesh,
    medium: Medium,
    n_out: Optional[float] = None,
    verbose: bool = True,
) -> dict:
    """Compare the absorbed fraction of a run with the diffusion estimate.

    The mesh is replaced by the sphere of equal volume, so the comparison
    is meaningful for compact, roughly isotropic domains with a source near
    the centre.

    Returns
    -------
    dict
        ``monte_carlo``, ``diffusion``, ``relative_difference`` and
        ``std_error`` (binomial estimate of the Monte Carlo error).
    """
    n_out = result.config.n_out if n_out is None else n_out
    volume = float(mesh.volumes[mesh.element_media >= 0].sum()) * result.config.unit_in_mm ** 3
    radius = equivalent_sphere_radius(volume)

    mc = result.stats.absorbed_fraction
    diffusion = diffusion_absorbed_fraction(medium.mua, medium.mus, medium.g, radius, medium.n, n_out)
    n_photons = max(1, result.stats.launched)
    std_error = math.sqrt(max(mc * (1.0 - mc), 0.0) / n_photons)
    rel = abs(mc - diffusion) / diffusion if diffusion > 0 else float('inf')

    summary = {
        'monte_carlo': mc,
        'diffusion': diffusion,
        'relative_difference': rel,
        'std_error': std_error,
        'equivalent_radius_mm': radius,
    }

    if verbose:
        print("\n" + "=" * 70)
        print("DIFFUSION COMPARISON")
        print("=" * 70)
        print(f"{'Equivalent sphere radius (mm)':<35} {radius:>15.3f}")
        print(f"{'Monte Carlo absorbed fraction':<35} {mc:>15.4f} +/- {std_error:.4f}")
        print(f"{'Diffusion absorbed fraction':<35} {diffusion:>15.4f}")
        print(f"{'Relative difference':<35} {rel:>15.2%}")
        if rel > 0.1:
            print("\n⚠ LARGE DIFFERENCE FROM DIFFUSION THEORY")
            print("Possible causes:")
            print("  1. Domain is only a few transport lengths across")
            print("  2. Source is far from the centre of the mesh")
            print("  3. Photons abandoned by ray-tracing failures")
        else:
            print("\n✓ Absorbed fraction agrees with diffusion theory")

    return summary


def print_comparison(
    stats1: RunStatistics,
    stats2: RunStatistics,
    label1: str = "Run A",
    label2: str = "Run B",
) -> None:
    """Print side-by-side comparison of two run statistics."""
    print("\n" + "=" * 70)
    print("COMPARISON SUMMARY")
    print("=" * 70)

    print(f"\n{'Statistic':<35} {label1:>15} {label2:>15}")
    print("-" * 70)

    for key in ['launched', 'detected', 'trace_queries', 'retry_success', 'trace_failures']:
        v1, v2 = getattr(stats1, key), getattr(stats2, key)
        print(f"{key:<35} {v1:>15} {v2:>15}")

    for key in ['absorbed_weight', 'exited_weight', 'timed_out_weight', 'abandoned_weight']:
        v1, v2 = getattr(stats1, key), getattr(stats2, key)
        print(f"{key:<35} {v1:>15.4f} {v2:>15.4f}")

    print(f"{'Absorbed fraction':<35} {stats1.absorbed_fraction:>15.4f} {stats2.absorbed_fraction:>15.4f}")


def max_relative_difference(field1: np.ndarray, field2: np.ndarray) -> float:
    """Largest |a - b| relative to the peak magnitude of ``field1``."""
    scale = np.max(np.abs(field1))
    if scale == 0.0:
        return float(np.max(np.abs(field2)))
    return float(np.max(np.abs(field1 - field2)) / scale)
