import asyncio

import numpy as np
import pytest

from gbmbench.device import BufferUsage, ComputeDevice, DeviceLimits
from gbmbench.errors import AllocationError, DeviceBusy, MapError

STAGING = BufferUsage.STORAGE | BufferUsage.COPY_SRC | BufferUsage.COPY_DST
READBACK = BufferUsage.MAP_READ | BufferUsage.COPY_DST


def _read_back(device: ComputeDevice, source, size: int) -> np.ndarray:
    readback = device.create_buffer(size, READBACK, label="readback")
    encoder = device.create_command_encoder()
    encoder.copy_buffer_to_buffer(source, 0, readback, 0, size)
    device.queue.submit([encoder.finish()])
    asyncio.run(readback.map_async())
    data = readback.get_mapped_range().view(np.float32).copy()
    readback.unmap()
    return data


def test_write_copy_map_round_trip(cpu_device):
    values = np.array([1.5, -2.0, 3.25, 100.0], dtype=np.float32)
    buffer = cpu_device.create_buffer(values.nbytes, STAGING, label="staging")
    cpu_device.queue.write_buffer(buffer, 0, values)
    np.testing.assert_array_equal(_read_back(cpu_device, buffer, values.nbytes), values)


def test_write_at_offset(cpu_device):
    buffer = cpu_device.create_buffer(16, STAGING)
    cpu_device.queue.write_buffer(buffer, 0, np.zeros(4, dtype=np.float32))
    cpu_device.queue.write_buffer(buffer, 8, np.array([7.0], dtype=np.float32).tobytes())
    np.testing.assert_array_equal(_read_back(cpu_device, buffer, 16), [0.0, 0.0, 7.0, 0.0])


def test_buffer_over_device_limit_is_rejected():
    device = ComputeDevice("cpu", limits=DeviceLimits(max_buffer_size=64))
    device.create_buffer(64, STAGING)
    with pytest.raises(AllocationError):
        device.create_buffer(68, STAGING)


def test_non_positive_size_is_rejected(cpu_device):
    with pytest.raises(AllocationError):
        cpu_device.create_buffer(0, STAGING)


def test_unaligned_size_is_rejected(cpu_device):
    with pytest.raises(ValueError):
        cpu_device.create_buffer(6, STAGING)


def test_map_read_only_pairs_with_copy_dst(cpu_device):
    with pytest.raises(ValueError):
        cpu_device.create_buffer(16, BufferUsage.MAP_READ | BufferUsage.STORAGE)


def test_allocation_on_lost_device_fails(cpu_device):
    cpu_device.lose("unplugged")
    with pytest.raises(AllocationError, match="unplugged"):
        cpu_device.create_buffer(16, STAGING)


def test_write_requires_copy_dst(cpu_device):
    buffer = cpu_device.create_buffer(16, BufferUsage.STORAGE)
    with pytest.raises(ValueError):
        cpu_device.queue.write_buffer(buffer, 0, np.zeros(4, dtype=np.float32))


def test_write_out_of_bounds(cpu_device):
    buffer = cpu_device.create_buffer(8, STAGING)
    with pytest.raises(ValueError):
        cpu_device.queue.write_buffer(buffer, 4, np.zeros(2, dtype=np.float32))


def test_copy_out_of_bounds(cpu_device):
    source = cpu_device.create_buffer(16, STAGING)
    target = cpu_device.create_buffer(8, READBACK)
    encoder = cpu_device.create_command_encoder()
    with pytest.raises(ValueError):
        encoder.copy_buffer_to_buffer(source, 0, target, 0, 16)


def test_copy_requires_usage_flags(cpu_device):
    source = cpu_device.create_buffer(16, BufferUsage.STORAGE)
    target = cpu_device.create_buffer(16, READBACK)
    encoder = cpu_device.create_command_encoder()
    with pytest.raises(ValueError):
        encoder.copy_buffer_to_buffer(source, 0, target, 0, 16)


def test_map_requires_map_read(cpu_device):
    buffer = cpu_device.create_buffer(16, STAGING)
    with pytest.raises(MapError):
        asyncio.run(buffer.map_async())


def test_mapped_range_requires_mapping(cpu_device):
    buffer = cpu_device.create_buffer(16, READBACK)
    with pytest.raises(MapError):
        buffer.get_mapped_range()


def test_double_map_fails(cpu_device):
    buffer = cpu_device.create_buffer(16, READBACK)
    asyncio.run(buffer.map_async())
    assert buffer.is_mapped
    with pytest.raises(MapError):
        asyncio.run(buffer.map_async())
    buffer.unmap()
    assert not buffer.is_mapped


def test_map_after_device_loss_fails(cpu_device):
    buffer = cpu_device.create_buffer(16, READBACK)
    cpu_device.lose("driver reset")
    with pytest.raises(MapError, match="driver reset"):
        asyncio.run(buffer.map_async())


def test_destroyed_buffer_cannot_be_mapped(cpu_device):
    buffer = cpu_device.create_buffer(16, READBACK)
    buffer.destroy()
    assert buffer.is_destroyed
    with pytest.raises(MapError):
        asyncio.run(buffer.map_async())


def test_command_buffer_submits_once(cpu_device):
    source = cpu_device.create_buffer(16, STAGING)
    target = cpu_device.create_buffer(16, READBACK)
    encoder = cpu_device.create_command_encoder()
    encoder.copy_buffer_to_buffer(source, 0, target, 0, 16)
    command_buffer = encoder.finish()
    cpu_device.queue.submit([command_buffer])
    with pytest.raises(ValueError):
        cpu_device.queue.submit([command_buffer])


def test_finish_with_open_pass_fails(cpu_device):
    encoder = cpu_device.create_command_encoder()
    encoder.begin_compute_pass()
    with pytest.raises(ValueError):
        encoder.finish()


def test_dispatch_without_kernel_fails(cpu_device):
    compute = cpu_device.create_command_encoder().begin_compute_pass()
    with pytest.raises(ValueError):
        compute.dispatch_workgroups(1)


def test_exclusive_guard_rejects_second_claim(cpu_device):
    with cpu_device.exclusive():
        with pytest.raises(DeviceBusy):
            with cpu_device.exclusive():
                pass
    with cpu_device.exclusive():
        pass


def test_device_ids_are_unique():
    assert ComputeDevice("cpu").id != ComputeDevice("cpu").id
