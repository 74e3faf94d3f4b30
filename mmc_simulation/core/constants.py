"""
Physical constants and tracer tuning parameters.
"""

from scipy.constants import c as SPEED_OF_LIGHT_M_S

# Physical constants
SPEED_OF_LIGHT_MM_S = SPEED_OF_LIGHT_M_S * 1.0e3  # mm/s
R_C0 = 1.0 / SPEED_OF_LIGHT_MM_S  # s/mm

# Debug flag
DEBUG = False

# Ray-tracing retry budget and photon nudge fraction
MAX_TRIAL = 3
FIX_PHOTON = 1.0e-3

# -ln(u) substitute when the uniform draw is exactly zero
LOG_MT_MAX = 22.1807097779182

# Number of uint32 words in a saved per-photon RNG seed
RAND_SEED_WORDS = 4

# Relative tolerance of the point-in-element test
CONTAINMENT_EPS = 1.0e-5

# Below this |g| the phase function is treated as isotropic
ISOTROPIC_G = 1.0e-6

# Local face j of a tetrahedron is made of these element-local nodes
FACE_NODES = ((0, 1, 2), (0, 1, 3), (0, 2, 3), (1, 2, 3))

# Element-local node opposite each face
FACE_OPPOSITE = (3, 2, 1, 0)

# Undirected edges of a tetrahedron, in quadratic mid-node order
EDGE_PAIRS = ((0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3))

# Lumped (HRZ) volume share of the corner and mid-edge nodes of a 10-node element
QUADRATIC_CORNER_SHARE = 1.0 / 36.0
QUADRATIC_EDGE_SHARE = 4.0 / 27.0

# Photon fates
FATE_ABSORBED = "absorbed"
FATE_EXITED = "exited"
FATE_TIMED_OUT = "timed_out"
FATE_TRACE_FAILURE = "trace_failure"
PHOTON_FATES = (FATE_ABSORBED, FATE_EXITED, FATE_TIMED_OUT, FATE_TRACE_FAILURE)

# Output types
OUTPUT_TYPES = ("flux", "fluence", "energy", "jacobian", "wp")
REPLAY_OUTPUT_TYPES = ("jacobian", "wp")

# Source types
SOURCE_TYPES = ("pencil", "isotropic", "cone")
