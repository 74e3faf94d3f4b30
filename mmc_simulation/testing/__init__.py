"""
Testing subpackage for MMC photon simulation.

This subpackage provides tools for testing and debugging the simulation:
- Structured tetrahedral meshes for isolating geometry-related issues
- Validation functions for meshes and short runs
- Comparison against the diffusion approximation and between runs

Example usage:
    from mmc_simulation.testing import create_box_mesh, compare_with_diffusion

    # Create a simple mesh for testing
    mesh = create_box_mesh(size=60.0, divisions=6)

    # Check a run against diffusion theory
    summary = compare_with_diffusion(result, mesh, media[1])
"""

from .simple_geometry import (
    create_box_mesh,
    create_layered_box_mesh,
    create_single_tet_mesh,
    print_mesh_info,
)

from .validation import (
    validate_mesh,
    validate_transport_module,
    run_quick_test,
)

from .comparison import (
    effective_reflection,
    equivalent_sphere_radius,
    diffusion_absorbed_fraction,
    compare_with_diffusion,
    print_comparison,
    max_relative_difference,
)

__all__ = [
    # Simple geometry
    "create_box_mesh",
    "create_layered_box_mesh",
    "create_single_tet_mesh",
    "print_mesh_info",
    # Validation
    "validate_mesh",
    "validate_transport_module",
    "run_quick_test",
    # Comparison
    "effective_reflection",
    "equivalent_sphere_radius",
    "diffusion_absorbed_fraction",
    "compare_with_diffusion",
    "print_comparison",
    "max_relative_difference",
]
