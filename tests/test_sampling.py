"""
随机数流与抽样方法的单元测试
"""

import numpy as np
import pytest

from mmc_simulation.core.sampling import (
    RandomStream,
    photon_seed,
    rotate_direction,
    sample_direction_in_cone,
    sample_hg_cos_theta,
    sample_isotropic_direction,
    sample_launch_direction,
)


class TestRandomStream:
    """测试随机数流"""

    def test_same_seed_same_sequence(self):
        """测试相同 (seed, index) 产生相同序列"""
        a = RandomStream(1234, 5)
        b = RandomStream(1234, 5)
        assert [a.uniform01() for _ in range(20)] == [b.uniform01() for _ in range(20)]

    def test_different_index_different_sequence(self):
        """测试不同流索引产生不同序列"""
        a = RandomStream(1234, 0)
        b = RandomStream(1234, 1)
        assert [a.uniform01() for _ in range(5)] != [b.uniform01() for _ in range(5)]

    def test_reseed_replays_sequence(self):
        """测试用保存的种子重新开始序列"""
        stream = RandomStream(99, 3)
        seed = stream.seed.copy()
        first = [stream.next_scatter_length() for _ in range(10)]
        stream.reseed(seed)
        assert [stream.next_scatter_length() for _ in range(10)] == first

    def test_uniform_range(self):
        """测试均匀分布取值范围"""
        stream = RandomStream(42)
        values = np.array([stream.uniform01() for _ in range(1000)])
        assert np.all((values >= 0.0) & (values < 1.0))

    def test_scatter_length_mean(self):
        """测试散射长度服从均值为 1 的指数分布"""
        stream = RandomStream(42)
        values = np.array([stream.next_scatter_length() for _ in range(20000)])
        assert np.all(values >= 0.0)
        assert values.mean() == pytest.approx(1.0, abs=0.03)

    def test_photon_seed(self):
        """测试单光子种子只依赖全局种子与光子序号"""
        s1 = photon_seed(7, 10)
        assert s1.shape == (4,)
        assert s1.dtype == np.uint32
        np.testing.assert_array_equal(s1, photon_seed(7, 10))
        assert not np.array_equal(s1, photon_seed(7, 11))

    def test_bad_seed_shape(self):
        """测试种子长度错误时报错"""
        stream = RandomStream(1)
        with pytest.raises(ValueError):
            stream.reseed([1, 2, 3])


class TestHenyeyGreenstein:
    """测试 Henyey-Greenstein 相函数抽样"""

    @pytest.mark.parametrize("g", [0.0, 0.5, 0.9, -0.3])
    def test_mean_cosine(self, g):
        """测试平均散射角余弦等于 g"""
        stream = RandomStream(2024)
        samples = np.array([sample_hg_cos_theta(g, stream.next_zenith()) for _ in range(20000)])
        assert np.all(np.abs(samples) <= 1.0)
        assert samples.mean() == pytest.approx(g, abs=0.02)

    def test_forward_limit(self):
        """测试 u=1 时为前向散射"""
        assert sample_hg_cos_theta(0.9, 1.0) == pytest.approx(1.0)


class TestDirections:
    """测试方向抽样与旋转"""

    def test_isotropic(self):
        """测试各向同性方向"""
        stream = RandomStream(3)
        dirs = np.array([sample_isotropic_direction(stream) for _ in range(5000)])
        np.testing.assert_allclose(np.linalg.norm(dirs, axis=1), 1.0)
        np.testing.assert_allclose(dirs.mean(axis=0), 0.0, atol=0.05)

    def test_cone(self):
        """测试锥内方向都在半角之内"""
        stream = RandomStream(4)
        axis = np.array([0.0, 1.0, 1.0]) / np.sqrt(2)
        half_angle = np.radians(10.0)
        for _ in range(500):
            d = sample_direction_in_cone(stream, axis, half_angle)
            assert np.linalg.norm(d) == pytest.approx(1.0)
            assert np.dot(d, axis) >= np.cos(half_angle) - 1e-12

    def test_pencil_keeps_direction(self):
        """测试笔形光束方向不变"""
        stream = RandomStream(5)
        d = sample_launch_direction(stream, "pencil", np.array([0.0, 0.0, 1.0]))
        np.testing.assert_array_equal(d, [0.0, 0.0, 1.0])

    @pytest.mark.parametrize("direction", [
        [0.0, 0.0, 1.0],
        [0.0, 0.0, -1.0],
        [0.6, 0.0, 0.8],
        [1.0, 0.0, 0.0],
    ])
    def test_rotation_preserves_angle(self, direction):
        """测试旋转后与原方向夹角余弦等于 cos(theta)"""
        d = np.array(direction)
        for cos_theta, phi in [(0.3, 0.5), (-0.7, 2.0), (0.95, 4.0)]:
            new = rotate_direction(d, cos_theta, phi)
            assert np.linalg.norm(new) == pytest.approx(1.0)
            assert np.dot(new, d) == pytest.approx(cos_theta, abs=1e-9)
