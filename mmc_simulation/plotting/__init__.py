"""
Plotting subpackage for MMC photon simulation visualization.

This subpackage provides visualization tools for:
- Mesh boundary, source and detector inspection
- Time-resolved field profiles and field slices
- Detected photon statistics

Example usage:
    from mmc_simulation.plotting import plot_field_slice, plot_time_profile

    result = run_simulation(mesh, media, source, detectors, cfg)
    plot_field_slice(mesh, result, axis='y', save_path='Figures/fluence_y.png')
    plot_time_profile(result)
"""

from .mesh_viewer import (
    boundary_faces,
    plot_mesh_wireframe,
    plot_mesh_setup,
)

from .results import (
    plot_time_profile,
    plot_field_slice,
    visualize_detected_photons,
)

__all__ = [
    # Mesh visualization
    "boundary_faces",
    "plot_mesh_wireframe",
    "plot_mesh_setup",
    # Simulation results
    "plot_time_profile",
    "plot_field_slice",
    "visualize_detected_photons",
]
