"""
Data classes for mesh-based Monte Carlo photon simulation.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from .. import config
from .constants import OUTPUT_TYPES, PHOTON_FATES, SOURCE_TYPES


@dataclass(frozen=True)
class Medium:
    """Optical properties of one region of the mesh."""

    mua: float  # absorption coefficient [1/mm]
    mus: float  # scattering coefficient [1/mm]
    g: float = 0.0  # anisotropy
    n: float = 1.0  # refractive index

    @property
    def mut(self) -> float:
        return self.mua + self.mus


@dataclass
class Source:
    """Photon source consumed by the launch step.

    Attributes
    ----------
    type : str
        One of ``pencil``, ``isotropic`` or ``cone``.
    position : np.ndarray
        Launch position in mesh units.
    direction : np.ndarray
        Launch direction (cone axis for ``cone``), normalized on creation.
    param : float
        Cone half-angle in radians, unused otherwise.
    element : int or None
        0-based index of the element enclosing ``position``. Located by a
        containment search when left as None.
    """

    type: str = "pencil"
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    direction: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 1.0]))
    param: float = 0.0
    element: Optional[int] = None

    def __post_init__(self):
        if self.type not in SOURCE_TYPES:
            raise ValueError(f"Unsupported source type '{self.type}', expected one of {SOURCE_TYPES}")
        self.position = np.asarray(self.position, dtype=float)
        direction = np.asarray(self.direction, dtype=float)
        norm = np.linalg.norm(direction)
        if norm == 0.0:
            raise ValueError("Source direction must be non-zero")
        self.direction = direction / norm


@dataclass
class Detector:
    """Spherical capture region centred on a boundary point."""

    position: np.ndarray
    radius: float

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=float)
        if self.radius <= 0.0:
            raise ValueError("Detector radius must be positive")


@dataclass(frozen=True)
class RunConfig:
    """Immutable run configuration passed to the transport engine.

    Time values are in seconds, lengths in mesh units scaled to mm by
    ``unit_in_mm``. See :mod:`mmc_simulation.config` for the defaults.
    """

    n_photons: int = config.DEFAULT_N_PHOTONS
    seed: int = config.DEFAULT_SEED
    n_threads: int = config.DEFAULT_N_THREADS
    tstart: float = config.DEFAULT_TSTART
    tend: float = config.DEFAULT_TEND
    tstep: float = config.DEFAULT_TSTEP
    min_energy: float = config.DEFAULT_MIN_ENERGY
    roulette_size: float = config.DEFAULT_ROULETTE_SIZE
    do_reflect: bool = True
    do_specular: bool = False
    n_out: float = config.DEFAULT_N_OUT
    unit_in_mm: float = config.DEFAULT_UNIT_IN_MM
    void_time: bool = True
    basis_order: int = config.DEFAULT_BASIS_ORDER
    output_type: str = config.DEFAULT_OUTPUT_TYPE
    normalize: bool = True
    method: str = config.DEFAULT_METHOD
    save_detector: bool = True
    save_exit: bool = False
    save_seed: bool = False
    save_momentum: bool = False
    det_photon_buffer: int = config.DET_PHOTON_BUF
    check_containment: bool = False
    verbose: bool = False

    def __post_init__(self):
        if self.tstart > self.tend or self.tstep <= 0.0:
            raise ValueError("incorrect time gate settings")
        if self.tstep > self.tend - self.tstart and self.tend > self.tstart:
            object.__setattr__(self, "tstep", self.tend - self.tstart)
        self.validate()

    def validate(self):
        if self.n_photons < 0:
            raise ValueError("n_photons must be non-negative")
        if self.n_threads < 0:
            raise ValueError("n_threads must be non-negative")
        if self.tend <= self.tstart:
            raise ValueError("tend must be larger than tstart")
        if self.roulette_size <= 1.0:
            raise ValueError("roulette_size must be larger than 1")
        if self.min_energy < 0.0:
            raise ValueError("min_energy must be non-negative")
        if self.basis_order not in (0, 1, 2):
            raise ValueError("basis_order must be 0 (element), 1 (linear node) or 2 (quadratic node)")
        if self.output_type not in OUTPUT_TYPES:
            raise ValueError(f"Unknown output type '{self.output_type}', expected one of {OUTPUT_TYPES}")
        if self.unit_in_mm <= 0.0:
            raise ValueError("unit_in_mm must be positive")
        if self.det_photon_buffer < 0:
            raise ValueError("det_photon_buffer must be non-negative")
        # Imported here to avoid a cycle with geometry -> data_classes
        from .geometry import TRACERS
        if self.method not in TRACERS:
            raise ValueError(f"Unknown ray-tracing method '{self.method}', expected one of {tuple(TRACERS)}")

    @property
    def max_gate(self) -> int:
        return max(1, int((self.tend - self.tstart) / self.tstep + 0.5))


@dataclass
class TraceResult:
    """Exit of a ray from the element it starts in."""

    face: int  # local face index 0..3
    exit_point: np.ndarray
    distance: float


@dataclass
class PhotonState:
    """Mutable state of one in-flight photon history."""

    photon_id: int
    elem: int
    pos: np.ndarray
    dir: np.ndarray
    weight: float = 1.0
    tof: float = 0.0
    slen: float = 0.0  # remaining free path in optical (dimensionless) units
    n_scatter: int = 0
    ppath: Optional[np.ndarray] = None  # partial path per medium (mm)
    momentum: Optional[np.ndarray] = None  # momentum transfer per medium
    seed: Optional[np.ndarray] = None
    replay_weight: float = 0.0
    replay_time: float = 0.0


@dataclass
class DetectedPhoton:
    """Record of a photon that left the mesh through a detector.

    Attributes
    ----------
    photon_id : int
        Global index of the photon history.
    detector_id : int
        1-based index of the capturing detector.
    n_scatter : int
        Number of scattering events along the whole path.
    weight : float
        Photon weight when leaving the mesh.
    tof : float
        Time of flight at exit (seconds).
    ppath : np.ndarray
        Path length travelled in each medium (mm), index 0 = background.
    momentum : np.ndarray or None
        Accumulated momentum transfer (1 - cos theta) per medium.
    exit_position : np.ndarray or None
        Exit point, kept when ``save_exit`` is set.
    exit_direction : np.ndarray or None
        Exit direction, kept when ``save_exit`` is set.
    seed : np.ndarray or None
        RNG seed that produced the history, kept when ``save_seed`` is set.
    """

    photon_id: int
    detector_id: int
    n_scatter: int
    weight: float
    tof: float
    ppath: np.ndarray
    momentum: Optional[np.ndarray] = None
    exit_position: Optional[np.ndarray] = None
    exit_direction: Optional[np.ndarray] = None
    seed: Optional[np.ndarray] = None


def _empty_fates() -> Dict[str, int]:
    return {fate: 0 for fate in PHOTON_FATES}


@dataclass
class RunStatistics:
    """Scalar tallies of one worker, or of a whole run after merging."""

    launched: int = 0
    launched_weight: float = 0.0
    absorbed_weight: float = 0.0
    exited_weight: float = 0.0
    timed_out_weight: float = 0.0
    roulette_gain: float = 0.0
    roulette_loss: float = 0.0
    abandoned_weight: float = 0.0
    specular_loss: float = 0.0
    fates: Dict[str, int] = field(default_factory=_empty_fates)
    trace_queries: int = 0
    retry_success: int = 0
    trace_failures: int = 0
    face_tests: int = 0
    detected: int = 0
    dropped_detections: int = 0

    def merge(self, other: "RunStatistics") -> "RunStatistics":
        """Add the tallies of ``other`` into this object and return it."""
        for name in (
            "launched", "launched_weight", "absorbed_weight", "exited_weight",
            "timed_out_weight", "roulette_gain", "roulette_loss",
            "abandoned_weight", "specular_loss", "trace_queries",
            "retry_success", "trace_failures", "face_tests", "detected",
            "dropped_detections",
        ):
            setattr(self, name, getattr(self, name) + getattr(other, name))
        for fate, count in other.fates.items():
            self.fates[fate] = self.fates.get(fate, 0) + count
        return self

    def energy_residual(self) -> float:
        """Launched weight minus every booked sink, zero up to round-off."""
        sinks = (
            self.absorbed_weight + self.exited_weight + self.timed_out_weight
            + self.abandoned_weight + self.specular_loss
            + self.roulette_loss - self.roulette_gain
        )
        return self.launched_weight - sinks

    @property
    def absorbed_fraction(self) -> float:
        return self.absorbed_weight / self.launched if self.launched else 0.0


@dataclass
class SimulationResult:
    """Output of a forward or replay run.

    ``field`` has shape (n_nodes or n_elements, max_gate) depending on the
    basis order; ``detected`` is sorted by photon id.
    """

    field: np.ndarray
    detected: List[DetectedPhoton]
    stats: RunStatistics
    config: RunConfig

    def detected_weights(self, detector_id: Optional[int] = None) -> np.ndarray:
        return np.array([d.weight for d in self.detected
                         if detector_id is None or d.detector_id == detector_id], dtype=float)

    def detected_ppath(self, detector_id: Optional[int] = None) -> np.ndarray:
        rows = [d.ppath for d in self.detected
                if detector_id is None or d.detector_id == detector_id]
        if not rows:
            return np.zeros((0, 0))
        return np.vstack(rows)
