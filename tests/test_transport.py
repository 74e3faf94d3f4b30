"""
光子输运状态机的单元测试
"""

import numpy as np
import pytest

from mmc_simulation.core.constants import FATE_TIMED_OUT, FATE_TRACE_FAILURE
from mmc_simulation.core.data_classes import Detector, Medium, RunConfig, Source
from mmc_simulation.core.sampling import RandomStream
from mmc_simulation.core.transport import (
    TransportContext,
    WorkerTally,
    launch_photon,
    play_roulette,
    simulate_photon,
    time_gate,
)
from mmc_simulation.testing import create_box_mesh

MEDIA = [Medium(0.0, 0.0, 1.0, 1.0), Medium(mua=0.05, mus=2.0, g=0.8, n=1.37)]


def make_context(cfg, tracer=None, detectors=()):
    mesh = create_box_mesh(size=10.0, divisions=2)
    source = Source("isotropic", position=(4.3, 5.6, 5.2))
    elem = mesh.find_element(source.position)
    return TransportContext(mesh, MEDIA, source, detectors, cfg, elem, tracer)


class TestRoulette:
    """测试俄罗斯轮盘赌"""

    def test_survival_rule(self):
        """测试存活条件 u * size <= 1"""
        assert play_roulette(1e-7, 0.05, 10.0) == pytest.approx(1e-6)
        assert play_roulette(1e-7, 0.1, 10.0) == pytest.approx(1e-6)
        assert play_roulette(1e-7, 0.5, 10.0) == 0.0

    def test_unbiased(self):
        """测试轮盘赌的期望权重不变"""
        stream = RandomStream(11)
        w = 1e-7
        values = np.array([play_roulette(w, stream.next_roulette_test(), 10.0) for _ in range(100000)])
        assert values.mean() == pytest.approx(w, rel=0.04)


class TestTimeGate:
    """测试时间门"""

    def test_gate_index(self):
        """测试时间门序号"""
        cfg = RunConfig(tstart=0.0, tend=1e-9, tstep=1e-10)
        assert cfg.max_gate == 10
        assert time_gate(0.0, cfg) == 0
        assert time_gate(0.55e-9, cfg) == 5

    def test_before_start_dropped(self):
        """测试早于 tstart 的时间被丢弃"""
        cfg = RunConfig(tstart=1e-10, tend=1e-9, tstep=1e-10)
        assert time_gate(0.5e-10, cfg) is None

    def test_overflow_clamped(self):
        """测试超出范围的时间归入最后一个时间门"""
        cfg = RunConfig(tstart=0.0, tend=1e-9, tstep=1e-10)
        assert time_gate(5e-9, cfg) == 9

    def test_large_step_clamped_to_window(self):
        """测试 tstep 大于时间窗时被截断"""
        cfg = RunConfig(tstart=0.0, tend=1e-9, tstep=5e-9)
        assert cfg.tstep == pytest.approx(1e-9)
        assert cfg.max_gate == 1


class TestRunConfig:
    """测试运行配置检查"""

    @pytest.mark.parametrize("kwargs", [
        {"roulette_size": 1.0},
        {"output_type": "radiance"},
        {"method": "siddon"},
        {"basis_order": 3},
        {"tstart": 2e-9, "tend": 1e-9},
        {"n_photons": -1},
    ])
    def test_invalid(self, kwargs):
        """测试非法配置报错"""
        with pytest.raises(ValueError):
            RunConfig(**kwargs)


class TestSinglePhoton:
    """测试单个光子历史"""

    def test_photon_terminates_and_conserves_energy(self):
        """测试单个光子终止且能量守恒"""
        cfg = RunConfig(tend=1e-8, basis_order=0, check_containment=True)
        ctx = make_context(cfg)
        stream = RandomStream(cfg.seed)
        tally = WorkerTally(field=np.zeros(ctx.field_shape), capacity=10)
        for i in range(5):
            photon = launch_photon(i, ctx, stream, tally.stats)
            simulate_photon(photon, ctx, stream, tally)
        assert tally.stats.launched == 5
        assert sum(tally.stats.fates.values()) == 5
        assert abs(tally.stats.energy_residual()) < 1e-12

    def test_same_seed_same_history(self):
        """测试相同种子得到相同光子历史"""
        cfg = RunConfig(tend=1e-8)
        ctx = make_context(cfg)
        results = []
        for _ in range(2):
            stream = RandomStream(cfg.seed, 0)
            tally = WorkerTally(field=np.zeros(ctx.field_shape), capacity=10)
            photon = launch_photon(3, ctx, stream, tally.stats)
            fate = simulate_photon(photon, ctx, stream, tally)
            results.append((fate, photon.weight, photon.n_scatter, photon.pos.copy(), tally.field.copy()))
        assert results[0][:3] == results[1][:3]
        np.testing.assert_array_equal(results[0][3], results[1][3])
        np.testing.assert_array_equal(results[0][4], results[1][4])

    def test_trace_failure_abandons_photon(self):
        """测试追踪失败时光子被放弃并计入统计"""
        cfg = RunConfig(tend=1e-8)
        ctx = make_context(cfg, tracer=lambda *args, **kwargs: None)
        stream = RandomStream(cfg.seed)
        tally = WorkerTally(field=np.zeros(ctx.field_shape), capacity=10)
        photon = launch_photon(0, ctx, stream, tally.stats)
        assert simulate_photon(photon, ctx, stream, tally) == FATE_TRACE_FAILURE
        assert tally.stats.abandoned_weight == pytest.approx(1.0)
        assert tally.stats.trace_failures == 1
        assert abs(tally.stats.energy_residual()) < 1e-12

    def test_time_cutoff(self):
        """测试到达 tend 的光子被截断"""
        cfg = RunConfig(tend=1e-12, tstep=1e-12)
        ctx = make_context(cfg)
        stream = RandomStream(cfg.seed)
        tally = WorkerTally(field=np.zeros(ctx.field_shape), capacity=10)
        photon = launch_photon(0, ctx, stream, tally.stats)
        assert simulate_photon(photon, ctx, stream, tally) == FATE_TIMED_OUT
        assert photon.tof == pytest.approx(1e-12)
        assert tally.stats.timed_out_weight == pytest.approx(photon.weight)
        assert abs(tally.stats.energy_residual()) < 1e-12

    def test_specular_loss(self):
        """测试入射镜面反射损失"""
        cfg = RunConfig(do_specular=True, n_out=1.0)
        ctx = make_context(cfg)
        stream = RandomStream(cfg.seed)
        tally = WorkerTally(field=np.zeros(ctx.field_shape), capacity=10)
        photon = launch_photon(0, ctx, stream, tally.stats)
        expected_loss = ((1.0 - 1.37) / (1.0 + 1.37)) ** 2
        assert photon.weight == pytest.approx(1.0 - expected_loss)
        assert tally.stats.specular_loss == pytest.approx(expected_loss)

    def test_detection_record(self):
        """测试出射光子被探测器记录"""
        cfg = RunConfig(tend=1e-7, save_exit=True, save_seed=True, save_momentum=True)
        detector = Detector(position=(5.0, 5.0, 5.0), radius=100.0)
        ctx = make_context(cfg, detectors=[detector])
        stream = RandomStream(cfg.seed)
        tally = WorkerTally(field=np.zeros(ctx.field_shape), capacity=100)
        for i in range(10):
            photon = launch_photon(i, ctx, stream, tally.stats)
            simulate_photon(photon, ctx, stream, tally)
        assert len(tally.detected) == tally.stats.fates["exited"]
        for record in tally.detected:
            assert record.detector_id == 1
            assert record.seed.shape == (4,)
            assert record.momentum is not None
            assert record.ppath[1] > 0
            assert np.linalg.norm(record.exit_direction) == pytest.approx(1.0)
