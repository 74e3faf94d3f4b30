"""
MMC 模拟核心模块

该子包包含模拟的核心功能模块：
- constants: 物理常数、追踪参数和调试标志
- data_classes: 数据结构定义（Medium, Source, Detector, RunConfig, DetectedPhoton 等）
- mesh: 四面体网格与相邻关系
- geometry: 射线-四面体求交（Plücker / Havel）
- sampling: 随机数流与抽样方法
- optics: 菲涅尔反射与折射
- transport: 单光子输运状态机
- simulation: 并行模拟主逻辑与结果归约
- replay: 探测光子重放与雅可比计算
"""

# 常数
from .constants import (
    SPEED_OF_LIGHT_MM_S,
    R_C0,
    DEBUG,
    MAX_TRIAL,
    FIX_PHOTON,
    PHOTON_FATES,
    OUTPUT_TYPES,
)

# 数据类
from .data_classes import (
    Medium,
    Source,
    Detector,
    RunConfig,
    TraceResult,
    PhotonState,
    DetectedPhoton,
    RunStatistics,
    SimulationResult,
)

# 网格
from .mesh import (
    TetMesh,
    build_face_neighbors,
    densify_quadratic,
    quadratic_shape_functions,
)

# 几何处理
from .geometry import (
    plucker_exit,
    havel_exit,
    TRACERS,
    get_tracer,
    find_exit_with_retry,
    reflect_direction,
    build_orthonormal_frame,
)

# 抽样
from .sampling import (
    photon_seed,
    RandomStream,
    sample_hg_cos_theta,
    rotate_direction,
    sample_isotropic_direction,
    sample_direction_in_cone,
)

# 光学
from .optics import (
    fresnel_reflectance,
    normal_incidence_reflectance,
    refract_direction,
)

# 输运
from .transport import (
    TransportContext,
    play_roulette,
    time_gate,
    launch_photon,
    simulate_photon,
)

# 模拟
from .simulation import (
    SimulationAborted,
    split_photons,
    run_simulation,
    print_statistics,
)

# 重放
from .replay import (
    ReplayData,
    replay_detected,
    compare_replay,
    jacobian_mua,
    jacobian_mus,
)

__all__ = [
    # 常数
    'SPEED_OF_LIGHT_MM_S',
    'R_C0',
    'DEBUG',
    'MAX_TRIAL',
    'FIX_PHOTON',
    'PHOTON_FATES',
    'OUTPUT_TYPES',
    # 数据类
    'Medium',
    'Source',
    'Detector',
    'RunConfig',
    'TraceResult',
    'PhotonState',
    'DetectedPhoton',
    'RunStatistics',
    'SimulationResult',
    # 网格
    'TetMesh',
    'build_face_neighbors',
    'densify_quadratic',
    'quadratic_shape_functions',
    # 几何
    'plucker_exit',
    'havel_exit',
    'TRACERS',
    'get_tracer',
    'find_exit_with_retry',
    'reflect_direction',
    'build_orthonormal_frame',
    # 抽样
    'photon_seed',
    'RandomStream',
    'sample_hg_cos_theta',
    'rotate_direction',
    'sample_isotropic_direction',
    'sample_direction_in_cone',
    # 光学
    'fresnel_reflectance',
    'normal_incidence_reflectance',
    'refract_direction',
    # 输运
    'TransportContext',
    'play_roulette',
    'time_gate',
    'launch_photon',
    'simulate_photon',
    # 模拟
    'SimulationAborted',
    'split_photons',
    'run_simulation',
    'print_statistics',
    # 重放
    'ReplayData',
    'replay_detected',
    'compare_replay',
    'jacobian_mua',
    'jacobian_mus',
]
