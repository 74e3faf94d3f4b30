"""
MMC Photon Simulation Package
=============================

This package provides a mesh-based Monte Carlo (MMC) simulator for photon
migration in turbid media. Photons are traced element by element through a
tetrahedral mesh, which follows curved boundaries and internal interfaces
far better than a voxel grid.

Modules:
--------
- config: Configurable default parameters
- core.constants: Physical constants and tracer parameters
- core.data_classes: Data structures (Medium, Source, Detector, RunConfig, ...)
- core.mesh: Tetrahedral mesh and face adjacency
- core.geometry: Ray-tetrahedron intersection (Plücker and Havel tests)
- core.sampling: Per-photon random streams and direction sampling
- core.optics: Fresnel reflection and refraction
- core.transport: Single-photon transport state machine
- core.simulation: Parallel simulation driver and reduction
- core.replay: Detected photon replay and Jacobians
- plotting: Result and mesh visualization
- testing: Simple meshes, validation and diffusion comparison
"""

from . import config
from .core.constants import DEBUG, MAX_TRIAL, FIX_PHOTON, SPEED_OF_LIGHT_MM_S
from .core.data_classes import (
    Medium,
    Source,
    Detector,
    RunConfig,
    DetectedPhoton,
    RunStatistics,
    SimulationResult,
)
from .core.mesh import TetMesh, build_face_neighbors, densify_quadratic, quadratic_shape_functions
from .core.geometry import (
    plucker_exit,
    havel_exit,
    find_exit_with_retry,
    build_orthonormal_frame,
)
from .core.sampling import (
    RandomStream,
    photon_seed,
    sample_hg_cos_theta,
    sample_isotropic_direction,
    sample_direction_in_cone,
)
from .core.optics import fresnel_reflectance, refract_direction
from .core.simulation import (
    SimulationAborted,
    run_simulation,
    print_statistics,
)
from .core.replay import (
    ReplayData,
    replay_detected,
    compare_replay,
    jacobian_mua,
    jacobian_mus,
)

__version__ = "1.0.0"
__all__ = [
    # Config module
    "config",
    # Constants
    "DEBUG",
    "MAX_TRIAL",
    "FIX_PHOTON",
    "SPEED_OF_LIGHT_MM_S",
    # Data classes
    "Medium",
    "Source",
    "Detector",
    "RunConfig",
    "DetectedPhoton",
    "RunStatistics",
    "SimulationResult",
    # Mesh
    "TetMesh",
    "build_face_neighbors",
    "densify_quadratic",
    "quadratic_shape_functions",
    # Geometry
    "plucker_exit",
    "havel_exit",
    "find_exit_with_retry",
    "build_orthonormal_frame",
    # Sampling
    "RandomStream",
    "photon_seed",
    "sample_hg_cos_theta",
    "sample_isotropic_direction",
    "sample_direction_in_cone",
    # Optics
    "fresnel_reflectance",
    "refract_direction",
    # Simulation
    "SimulationAborted",
    "run_simulation",
    "print_statistics",
    # Replay
    "ReplayData",
    "replay_detected",
    "compare_replay",
    "jacobian_mua",
    "jacobian_mus",
]
