import math

import pytest
import torch

from gbmbench.device import ComputeDevice, DeviceLimits
from gbmbench.errors import KernelCompileError
from gbmbench.kernels import (
    GBM_KERNEL_SOURCE,
    LANE_GROUP_SIZE,
    KernelCache,
    compile_kernel,
    dispatch_group_count,
)


@pytest.mark.parametrize(
    ("path_count", "groups"),
    [(1, 1), (63, 1), (64, 1), (65, 2), (128, 2), (129, 3), (10000, 157)],
)
def test_dispatch_group_count_covers_every_path(path_count, groups):
    assert dispatch_group_count(path_count) == groups
    assert groups * LANE_GROUP_SIZE >= path_count
    assert (groups - 1) * LANE_GROUP_SIZE < path_count


def test_dispatch_group_count_rejects_empty_groups():
    with pytest.raises(ValueError):
        dispatch_group_count(10, 0)


def _params(entry=100.0, mu=0.1, sigma=0.2, days=252.0):
    return torch.tensor([entry, mu, sigma, days], dtype=torch.float32)


def test_kernel_guard_discards_lanes_past_the_buffer():
    kernel = compile_kernel(GBM_KERNEL_SOURCE)
    results = torch.full((65,), float("nan"), dtype=torch.float32)
    kernel(_params(), results, group_count=dispatch_group_count(65))
    assert results.shape == (65,)
    assert torch.isfinite(results).all()
    assert (results > 0).all()


def test_kernel_first_lane_matches_linear_update():
    kernel = compile_kernel(GBM_KERNEL_SOURCE)
    results = torch.empty(3, dtype=torch.float32)
    kernel(_params(days=1.0), results, group_count=1)
    dt = 1.0 / 252.0
    # Lane 0 at step 0 hashes sin(0) = 0, so its draw is exactly 0.
    expected = 100.0 * (1.0 + 0.1 * dt + 0.2 * math.sqrt(dt) * -0.5)
    assert results[0].item() == pytest.approx(expected, rel=1e-5)


def test_kernel_is_deterministic_per_lane_and_step():
    kernel = compile_kernel(GBM_KERNEL_SOURCE)
    first = torch.empty(200, dtype=torch.float32)
    second = torch.empty(200, dtype=torch.float32)
    kernel(_params(), first, group_count=dispatch_group_count(200))
    kernel(_params(), second, group_count=dispatch_group_count(200))
    assert torch.equal(first, second)


def test_kernel_output_does_not_depend_on_buffer_size():
    kernel = compile_kernel(GBM_KERNEL_SOURCE)
    small = torch.empty(10, dtype=torch.float32)
    large = torch.empty(100, dtype=torch.float32)
    kernel(_params(days=30.0), small, group_count=1)
    kernel(_params(days=30.0), large, group_count=2)
    assert torch.allclose(small, large[:10], rtol=1e-3)


def test_malformed_source_fails_to_compile():
    with pytest.raises(KernelCompileError):
        compile_kernel("def main(params: Tensor,\n    return params\n")


def test_missing_entry_point_fails_to_compile():
    source = "def helper(x: Tensor):\n    return x + 1\n"
    with pytest.raises(KernelCompileError, match="entry point"):
        compile_kernel(source, "main")


def test_cache_compiles_once_per_device_and_source(cpu_device):
    cache = KernelCache()
    first = cache.get_or_compile(cpu_device, GBM_KERNEL_SOURCE)
    second = cache.get_or_compile(cpu_device, GBM_KERNEL_SOURCE)
    assert first is second
    assert len(cache) == 1
    assert KernelCache.key_for(cpu_device, GBM_KERNEL_SOURCE) in cache


def test_cache_is_scoped_to_device(cpu_device):
    cache = KernelCache()
    other = ComputeDevice("cpu")
    cache.get_or_compile(cpu_device, GBM_KERNEL_SOURCE)
    cache.get_or_compile(other, GBM_KERNEL_SOURCE)
    assert len(cache) == 2
    assert cache.evict(other) == 1
    assert len(cache) == 1
    assert KernelCache.key_for(cpu_device, GBM_KERNEL_SOURCE) in cache


def test_cache_does_not_store_failed_compilations(cpu_device):
    cache = KernelCache()
    with pytest.raises(KernelCompileError):
        cache.get_or_compile(cpu_device, "def main(:\n")
    assert len(cache) == 0


def test_workgroup_size_checked_against_device_limit():
    device = ComputeDevice("cpu", limits=DeviceLimits(max_workgroup_size=32))
    with pytest.raises(KernelCompileError):
        KernelCache().get_or_compile(device, GBM_KERNEL_SOURCE, workgroup_size=LANE_GROUP_SIZE)
