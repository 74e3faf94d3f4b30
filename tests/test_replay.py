"""
探测光子重放与雅可比计算的单元测试
"""

import dataclasses

import numpy as np
import pytest

from mmc_simulation.core.data_classes import Detector, Medium, RunConfig, Source
from mmc_simulation.core.replay import (
    ReplayData,
    compare_replay,
    jacobian_mua,
    jacobian_mus,
    replay_detected,
)
from mmc_simulation.core.simulation import run_simulation
from mmc_simulation.testing import create_box_mesh

MEDIA = [Medium(0.0, 0.0, 1.0, 1.0), Medium(mua=0.02, mus=1.0, g=0.5, n=1.37)]
SOURCE = Source("pencil", position=(4.6, 5.3, 0.0), direction=(0.0, 0.0, 1.0))
DETECTORS = [
    Detector(position=(5.0, 5.0, 0.0), radius=4.0),
    Detector(position=(5.0, 5.0, 10.0), radius=4.0),
]


@pytest.fixture(scope="module")
def forward():
    mesh = create_box_mesh(size=10.0, divisions=2)
    cfg = RunConfig(n_photons=60, seed=42, tend=1e-8, save_seed=True, basis_order=0)
    result = run_simulation(mesh, MEDIA, SOURCE, DETECTORS, cfg)
    assert len(result.detected) > 0
    return mesh, cfg, result


class TestReplayData:
    """测试重放数据"""

    def test_from_detected(self, forward):
        """测试从探测光子构造重放数据"""
        _, _, result = forward
        replay = ReplayData.from_detected(result.detected)
        assert len(replay) == len(result.detected)
        assert replay.seeds.shape == (len(result.detected), 4)
        np.testing.assert_array_equal(replay.photon_ids, [d.photon_id for d in result.detected])
        replay.validate()

    def test_detector_filter(self, forward):
        """测试按探测器筛选"""
        _, _, result = forward
        replay = ReplayData.from_detected(result.detected, detector_id=1)
        assert np.all(replay.detector_ids == 1)
        assert len(replay) == sum(1 for d in result.detected if d.detector_id == 1)

    def test_missing_seeds(self, forward):
        """测试未保存种子时报错"""
        _, _, result = forward
        stripped = [dataclasses.replace(d, seed=None) for d in result.detected]
        with pytest.raises(ValueError):
            ReplayData.from_detected(stripped)

    def test_count_mismatch(self):
        """测试种子与权重数量不一致"""
        replay = ReplayData(seeds=np.zeros((3, 4)), weights=np.ones(2), times=np.zeros(3))
        with pytest.raises(ValueError):
            replay.validate()


class TestReplayEquivalence:
    """测试重放结果与正向模拟一致"""

    def test_replay_reproduces_detections(self, forward):
        """测试重放光子的探测器、权重与分段路径与原始一致"""
        mesh, cfg, result = forward
        replayed = replay_detected(mesh, MEDIA, SOURCE, DETECTORS, cfg, result.detected)
        assert compare_replay(result.detected, replayed.detected)
        assert replayed.stats.launched == len(result.detected)

    def test_replay_with_threads(self, forward):
        """测试多线程重放结果一致"""
        mesh, cfg, result = forward
        threaded = dataclasses.replace(cfg, n_threads=3)
        replayed = replay_detected(mesh, MEDIA, SOURCE, DETECTORS, threaded, result.detected)
        assert compare_replay(result.detected, replayed.detected)

    def test_compare_detects_mismatch(self, forward):
        """测试权重不一致时比较失败"""
        _, _, result = forward
        altered = [dataclasses.replace(d, weight=d.weight * 1.01) for d in result.detected]
        assert not compare_replay(result.detected, altered)
        assert not compare_replay(result.detected, result.detected[1:])


class TestJacobian:
    """测试雅可比计算"""

    def test_mua_jacobian_total(self, forward):
        """测试吸收雅可比之和等于 -sum(w * L) / N"""
        mesh, cfg, result = forward
        detected = [d for d in result.detected if d.detector_id == 1]
        jac = jacobian_mua(mesh, MEDIA, SOURCE, DETECTORS, cfg, result.detected, detector_id=1)
        assert jac.shape == (mesh.n_elements, cfg.max_gate)
        assert np.all(jac <= 0.0)
        if detected:
            expected = -sum(d.weight * d.ppath.sum() for d in detected) / len(detected)
            assert jac.sum() == pytest.approx(expected, rel=1e-9)

    def test_mus_jacobian(self, forward):
        """测试散射雅可比在吸收雅可比基础上加上 wp / mus"""
        mesh, cfg, result = forward
        jmua = jacobian_mua(mesh, MEDIA, SOURCE, DETECTORS, cfg, result.detected)
        jmus = jacobian_mus(mesh, MEDIA, SOURCE, DETECTORS, cfg, result.detected)
        assert jmus.shape == jmua.shape
        assert np.all(np.isfinite(jmus))
        assert np.all(jmus >= jmua)

    def test_wp_counts_scattering_events(self, forward):
        """测试 wp 场之和等于探测权重乘散射次数"""
        mesh, cfg, result = forward
        replayed = replay_detected(mesh, MEDIA, SOURCE, DETECTORS, cfg, result.detected, output_type="wp")
        expected = sum(d.weight * d.n_scatter for d in result.detected) / len(result.detected)
        assert replayed.field.sum() == pytest.approx(expected, rel=1e-9)
