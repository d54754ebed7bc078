"""Buffers, command encoding and the submission queue of a compute device.

The parallel backend talks to a torch device through the same vocabulary
parallel-compute APIs use: byte-addressed buffers with usage flags, command
encoders recording compute passes and copies, a queue executing submitted
command buffers in order, and an asynchronous host mapping for readback.

On CUDA the queue owns a dedicated stream, so submission order is the
device's own ordering and the host only waits when a buffer is mapped. On the
CPU every submitted command runs to completion inside ``submit``.
"""
from __future__ import annotations

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass
import enum
import itertools
from typing import TYPE_CHECKING, Callable, Iterator, Optional, Sequence

import numpy as np
import torch

from .errors import AllocationError, DeviceBusy, MapError

if TYPE_CHECKING:
    from .kernels import ComputeKernel

_device_ids = itertools.count(1)


class BufferUsage(enum.Flag):
    MAP_READ = enum.auto()
    COPY_SRC = enum.auto()
    COPY_DST = enum.auto()
    UNIFORM = enum.auto()
    STORAGE = enum.auto()


@dataclass(frozen=True)
class DeviceLimits:
    max_buffer_size: int = 256 * 1024 * 1024
    max_workgroup_size: int = 256


class DeviceBuffer:
    """A fixed-size block of device (or, for ``MAP_READ``, host) memory."""

    def __init__(
        self,
        *,
        device: "ComputeDevice",
        size: int,
        usage: BufferUsage,
        storage: torch.Tensor,
        label: str,
    ) -> None:
        self.device = device
        self.size = size
        self.usage = usage
        self.label = label
        self._storage: Optional[torch.Tensor] = storage
        self._mapped = False

    @property
    def storage(self) -> torch.Tensor:
        if self._storage is None:
            raise ValueError(f"Buffer {self.label!r} has been destroyed.")
        return self._storage

    @property
    def is_mapped(self) -> bool:
        return self._mapped

    @property
    def is_destroyed(self) -> bool:
        return self._storage is None

    def view(self, dtype: torch.dtype = torch.float32) -> torch.Tensor:
        return self.storage.view(dtype)

    async def map_async(self) -> None:
        """Wait for all submitted work, then expose the buffer to the host."""
        if BufferUsage.MAP_READ not in self.usage:
            raise MapError(f"Buffer {self.label!r} was not created with MAP_READ usage.")
        if self.is_destroyed:
            raise MapError(f"Buffer {self.label!r} has been destroyed.")
        if self._mapped:
            raise MapError(f"Buffer {self.label!r} is already mapped.")
        if self.device.is_lost:
            raise MapError(f"Device lost: {self.device.lost_reason}")

        await self.device.queue.on_submitted_work_done()

        if self.device.is_lost:
            raise MapError(f"Device lost: {self.device.lost_reason}")
        if self.is_destroyed:
            raise MapError(f"Buffer {self.label!r} was destroyed while mapping.")
        self._mapped = True

    def get_mapped_range(self) -> np.ndarray:
        """Byte view of the mapped buffer; valid until :meth:`unmap`."""
        if not self._mapped:
            raise MapError(f"Buffer {self.label!r} is not mapped.")
        return self.storage.numpy()

    def unmap(self) -> None:
        self._mapped = False

    def destroy(self) -> None:
        self._mapped = False
        self._storage = None


class CommandBuffer:
    """Recorded commands, executable exactly once."""

    def __init__(self, commands: Sequence[Callable[[], None]]) -> None:
        self._commands = tuple(commands)
        self._submitted = False

    def execute(self) -> None:
        if self._submitted:
            raise ValueError("Command buffer was already submitted.")
        self._submitted = True
        for command in self._commands:
            command()


class ComputePass:
    def __init__(self, encoder: "CommandEncoder") -> None:
        self._encoder = encoder
        self._kernel: Optional["ComputeKernel"] = None
        self._bindings: dict[int, DeviceBuffer] = {}
        self._commands: list[Callable[[], None]] = []
        self._ended = False

    def set_kernel(self, kernel: "ComputeKernel") -> None:
        self._check_open()
        self._kernel = kernel

    def set_binding(self, slot: int, buffer: DeviceBuffer) -> None:
        self._check_open()
        if not buffer.usage & (BufferUsage.UNIFORM | BufferUsage.STORAGE):
            raise ValueError(f"Buffer {buffer.label!r} cannot be bound to a kernel.")
        self._bindings[slot] = buffer

    def dispatch_workgroups(self, group_count: int) -> None:
        self._check_open()
        kernel = self._kernel
        if kernel is None:
            raise ValueError("No kernel set on compute pass.")
        if group_count < 0:
            raise ValueError("Workgroup count must be non-negative.")
        missing = [slot for slot in range(kernel.binding_count) if slot not in self._bindings]
        if missing:
            raise ValueError(f"Missing kernel binding(s): {missing}")
        bindings = tuple(self._bindings[slot] for slot in range(kernel.binding_count))

        def dispatch() -> None:
            kernel(*(buffer.view(torch.float32) for buffer in bindings), group_count=group_count)

        self._commands.append(dispatch)

    def end(self) -> None:
        self._check_open()
        self._ended = True
        self._encoder._close_pass(self._commands)

    def _check_open(self) -> None:
        if self._ended:
            raise ValueError("Compute pass already ended.")


class CommandEncoder:
    def __init__(self, device: "ComputeDevice") -> None:
        self._device = device
        self._commands: list[Callable[[], None]] = []
        self._open_pass: Optional[ComputePass] = None
        self._finished = False

    def begin_compute_pass(self) -> ComputePass:
        self._check_recording()
        if self._open_pass is not None:
            raise ValueError("A compute pass is already open.")
        self._open_pass = ComputePass(self)
        return self._open_pass

    def copy_buffer_to_buffer(
        self,
        source: DeviceBuffer,
        source_offset: int,
        destination: DeviceBuffer,
        destination_offset: int,
        size: int,
    ) -> None:
        self._check_recording()
        if BufferUsage.COPY_SRC not in source.usage:
            raise ValueError(f"Buffer {source.label!r} lacks COPY_SRC usage.")
        if BufferUsage.COPY_DST not in destination.usage:
            raise ValueError(f"Buffer {destination.label!r} lacks COPY_DST usage.")
        if min(size, source_offset, destination_offset) < 0:
            raise ValueError("Copy offsets and size must be non-negative.")
        if source_offset + size > source.size or destination_offset + size > destination.size:
            raise ValueError("Copy range exceeds buffer bounds.")

        def copy() -> None:
            target = destination.storage[destination_offset : destination_offset + size]
            target.copy_(source.storage[source_offset : source_offset + size], non_blocking=True)

        self._commands.append(copy)

    def finish(self) -> CommandBuffer:
        self._check_recording()
        if self._open_pass is not None:
            raise ValueError("Compute pass was not ended.")
        self._finished = True
        return CommandBuffer(self._commands)

    def _close_pass(self, commands: list[Callable[[], None]]) -> None:
        self._commands.extend(commands)
        self._open_pass = None

    def _check_recording(self) -> None:
        if self._finished:
            raise ValueError("Command encoder already finished.")


class Queue:
    """In-order submission queue of a :class:`ComputeDevice`."""

    poll_interval: float = 0.0005

    def __init__(self, device: "ComputeDevice") -> None:
        self._device = device
        self._pending: list[torch.cuda.Event] = []

    def write_buffer(self, buffer: DeviceBuffer, offset: int, data: np.ndarray | bytes) -> None:
        """One-shot host-to-device upload."""
        if BufferUsage.COPY_DST not in buffer.usage:
            raise ValueError(f"Buffer {buffer.label!r} lacks COPY_DST usage.")
        payload = data.tobytes() if isinstance(data, np.ndarray) else bytes(data)
        if offset < 0 or offset + len(payload) > buffer.size:
            raise ValueError("Write range exceeds buffer bounds.")
        if not payload:
            return
        host = torch.frombuffer(bytearray(payload), dtype=torch.uint8)
        with self._device.stream_context():
            buffer.storage[offset : offset + len(payload)].copy_(host)

    def submit(self, command_buffers: Sequence[CommandBuffer]) -> None:
        # Work submitted to a lost device is dropped; the loss surfaces when mapping.
        if self._device.is_lost:
            return
        try:
            with self._device.stream_context():
                for command_buffer in command_buffers:
                    command_buffer.execute()
        except RuntimeError as exc:
            self._device.lose(f"command execution failed: {exc}")
            return
        if self._device.stream is not None:
            event = torch.cuda.Event()
            event.record(self._device.stream)
            self._pending.append(event)

    async def on_submitted_work_done(self) -> None:
        await asyncio.sleep(0)
        while self._pending:
            try:
                done = self._pending[0].query()
            except RuntimeError as exc:
                self._pending.clear()
                self._device.lose(str(exc))
                return
            if done:
                self._pending.pop(0)
            else:
                await asyncio.sleep(self.poll_interval)


class ComputeDevice:
    """Handle to one parallel-compute device (a CUDA GPU or the vectorised CPU)."""

    def __init__(
        self,
        torch_device: torch.device | str,
        *,
        limits: DeviceLimits | None = None,
        label: str | None = None,
    ) -> None:
        self.torch_device = torch.device(torch_device)
        self.limits = limits or DeviceLimits()
        self.label = label or str(self.torch_device)
        self.id = next(_device_ids)
        self._lost_reason: Optional[str] = None
        self._in_flight = False
        self.stream: Optional[torch.cuda.Stream] = (
            torch.cuda.Stream(device=self.torch_device) if self.is_cuda else None
        )
        self.queue = Queue(self)

    def __repr__(self) -> str:
        return f"ComputeDevice(id={self.id}, label={self.label!r})"

    @property
    def is_cuda(self) -> bool:
        return self.torch_device.type == "cuda"

    @property
    def is_lost(self) -> bool:
        return self._lost_reason is not None

    @property
    def lost_reason(self) -> Optional[str]:
        return self._lost_reason

    def lose(self, reason: str = "device lost") -> None:
        if self._lost_reason is None:
            self._lost_reason = reason

    @contextmanager
    def stream_context(self) -> Iterator[None]:
        if self.stream is None:
            yield
        else:
            with torch.cuda.stream(self.stream):
                yield

    @contextmanager
    def exclusive(self) -> Iterator["ComputeDevice"]:
        """Claim the device for one in-flight call."""
        if self._in_flight:
            raise DeviceBusy(f"{self.label} already has a run in flight.")
        self._in_flight = True
        try:
            yield self
        finally:
            self._in_flight = False

    def create_buffer(self, size: int, usage: BufferUsage, *, label: str = "") -> DeviceBuffer:
        if self.is_lost:
            raise AllocationError(f"Device lost: {self._lost_reason}")
        if size < 1:
            raise AllocationError(f"Buffer size must be positive, got {size}.")
        if size > self.limits.max_buffer_size:
            raise AllocationError(
                f"Buffer of {size} bytes exceeds device limit of {self.limits.max_buffer_size} bytes."
            )
        if size % 4:
            raise ValueError("Buffer size must be a multiple of 4 bytes.")
        if BufferUsage.MAP_READ in usage and usage & ~(BufferUsage.MAP_READ | BufferUsage.COPY_DST):
            raise ValueError("MAP_READ may only be combined with COPY_DST.")

        try:
            if BufferUsage.MAP_READ in usage:
                storage = torch.empty(size, dtype=torch.uint8, pin_memory=self.is_cuda)
            else:
                storage = torch.empty(size, dtype=torch.uint8, device=self.torch_device)
        except RuntimeError as exc:
            raise AllocationError(f"Device rejected {size}-byte buffer: {exc}") from exc
        return DeviceBuffer(device=self, size=size, usage=usage, storage=storage, label=label)

    def create_command_encoder(self) -> CommandEncoder:
        return CommandEncoder(self)
