"""
Configuration settings for mesh-based Monte Carlo photon simulation.

This module contains the default values of every run parameter. Users can
modify these values to customize the simulation without changing the core
code. A run itself never reads this module directly: the defaults below
seed the fields of :class:`mmc_simulation.core.data_classes.RunConfig`,
which is an immutable value passed into the transport engine.

    from mmc_simulation.core.data_classes import RunConfig
    cfg = RunConfig(n_photons=10_000, tend=5e-9, tstep=1e-10)
"""

from __future__ import annotations

# =============================================================================
# Session
# =============================================================================

# Number of photon histories to simulate
DEFAULT_N_PHOTONS = 1000

# Global RNG seed (same value as the reference implementation)
DEFAULT_SEED = 0x623F9A9E

# Number of worker threads (0 = one per available CPU)
DEFAULT_N_THREADS = 1

# =============================================================================
# Time gates (seconds)
# =============================================================================

DEFAULT_TSTART = 0.0
DEFAULT_TEND = 5.0e-9
DEFAULT_TSTEP = 5.0e-9

# =============================================================================
# Variance reduction
# =============================================================================

# Weight below which Russian roulette is played
DEFAULT_MIN_ENERGY = 1.0e-6

# Survival odds are 1/ROULETTE_SIZE, survivors are boosted by ROULETTE_SIZE
DEFAULT_ROULETTE_SIZE = 10.0

# =============================================================================
# Boundary handling
# =============================================================================

# Refractive index outside the mesh
DEFAULT_N_OUT = 1.0

# Length unit of the mesh coordinates, in mm
DEFAULT_UNIT_IN_MM = 1.0

# =============================================================================
# Output
# =============================================================================

# One of: flux, fluence, energy, jacobian, wp
DEFAULT_OUTPUT_TYPE = "flux"

# 0 = piecewise constant (per element), 1 = piecewise linear (per node),
# 2 = piecewise quadratic (corner and mid-edge nodes, needs TetMesh.to_quadratic())
DEFAULT_BASIS_ORDER = 1

# Ray-tetrahedron test: plucker or havel
DEFAULT_METHOD = "plucker"

# Capacity of each worker's detected photon buffer
DET_PHOTON_BUF = 1_000_000

# =============================================================================
# Visualization Settings
# =============================================================================

PLOT_DPI = 300
QUICK_PLOT_DPI = 150

# Slice plot figure size
FIELD_SLICE_FIGSIZE = (8, 7)

# Detector statistics figure size
DETECTOR_FIGSIZE = (12, 10)

# Thickness (in mesh units) of the slab kept by slice plots
SLICE_THICKNESS = 0.5
