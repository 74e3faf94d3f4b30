"""
MMC 模拟包基本使用示例

这个示例展示了如何使用 mmc_simulation 包的基本功能。
"""

import numpy as np

# 导入主要模块
from mmc_simulation import (
    # 数据类
    Medium,
    Source,
    Detector,
    RunConfig,

    # 常数
    SPEED_OF_LIGHT_MM_S,

    # 功能函数
    RandomStream,
    sample_hg_cos_theta,
    run_simulation,
    jacobian_mua,
    print_statistics,
)

# 导入子包
from mmc_simulation.testing import (
    create_box_mesh,
    print_mesh_info,
    compare_with_diffusion,
    run_quick_test,
)

from mmc_simulation.plotting import (
    plot_mesh_setup,
    plot_field_slice,
    visualize_detected_photons,
)


def example_basic_physics():
    """基本物理量计算示例"""
    print("=" * 60)
    print("基本物理量计算示例")
    print("=" * 60)

    # 组织中的光速 (n = 1.37)
    n = 1.37
    print(f"\n真空光速: {SPEED_OF_LIGHT_MM_S:.4e} mm/s")
    print(f"组织中光速 (n={n}): {SPEED_OF_LIGHT_MM_S / n:.4e} mm/s")

    # Henyey-Greenstein 散射角抽样
    stream = RandomStream(global_seed=1234)
    g = 0.9
    cos_theta = [sample_hg_cos_theta(g, stream.next_zenith()) for _ in range(10000)]
    print(f"\nHG 抽样 (g={g}): 平均 cos(theta) = {np.mean(cos_theta):.4f}")


def example_forward_run():
    """均匀立方体正向模拟示例"""
    print("\n" + "=" * 60)
    print("均匀立方体正向模拟")
    print("=" * 60)

    # 60 mm 立方体网格
    mesh = create_box_mesh(size=60.0, divisions=6)
    print_mesh_info(mesh, "立方体网格")

    # 介质 0 为背景，介质 1 为组织
    media = [Medium(0.0, 0.0, 1.0, 1.0), Medium(mua=0.01, mus=1.0, g=0.9, n=1.0)]
    source = Source("isotropic", position=(30.3, 29.6, 30.1))
    detectors = [Detector(position=(30.0, 30.0, 60.0), radius=5.0)]
    cfg = RunConfig(n_photons=2000, seed=1648335518, tend=1e-8, tstep=1e-10,
                    do_reflect=False, save_seed=True, n_threads=0)

    result = run_simulation(mesh, media, source, detectors, cfg)
    print_statistics(result.stats)
    compare_with_diffusion(result, mesh, media[1])
    return mesh, media, source, detectors, cfg, result


def example_jacobian(mesh, media, source, detectors, cfg, result):
    """探测光子重放与雅可比计算示例"""
    print("\n" + "=" * 60)
    print("吸收系数雅可比")
    print("=" * 60)

    jac = jacobian_mua(mesh, media, source, detectors, cfg, result.detected, detector_id=1)
    print(f"\n重放光子数: {len(result.detected)}")
    print(f"雅可比形状: {jac.shape}, 总和: {jac.sum():.4e}")


def example_plotting(mesh, source, detectors, result):
    """结果绘图示例"""
    print("\n" + "=" * 60)
    print("结果绘图")
    print("=" * 60)

    plot_mesh_setup(mesh, source, detectors)
    plot_field_slice(mesh, result, axis="y", thickness=10.0)
    visualize_detected_photons(result)


def example_validation():
    """验证测试示例"""
    print("\n" + "=" * 60)
    print("网格与输运模块验证")
    print("=" * 60)

    run_quick_test()


def main():
    """主函数"""
    print("\n" + "=" * 60)
    print("MMC 模拟包基本使用示例")
    print("=" * 60)

    # 运行各个示例
    example_basic_physics()
    forward = example_forward_run()
    example_jacobian(*forward)
    mesh, media, source, detectors, cfg, result = forward
    example_plotting(mesh, source, detectors, result)
    example_validation()

    print("\n" + "=" * 60)
    print("示例完成！")
    print("=" * 60)


if __name__ == "__main__":
    main()
