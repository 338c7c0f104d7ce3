# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/device.py

"""
Device collaborators for py-gpu-matmul

This module defines the device-side contracts the dispatcher talks to:

- DeviceBuffer / DevicePointer: flat device memory and element offsets into it
- DevicePointerArray: per-batch offset table that must be copied to the device
  before an indexed-batch multiply may read it
- Allocator: long-lived buffers and scoped scratch buffers
- DeviceExecutor: the three dense GEMM call shapes, column-major (BLAS) convention

NumpyDeviceExecutor is the reference executor. It reads operands through strided
NumPy views and completes every submission before returning, so submissions are
trivially ordered as on a single stream.
"""

import abc
import contextlib
import enum
from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np

from .dtypes import numeric_type_for


class Status(enum.IntEnum):
    SUCCESS = 0
    NOT_INITIALIZED = 1
    ALLOC_FAILED = 3
    INVALID_VALUE = 7
    ARCH_MISMATCH = 8
    EXECUTION_FAILED = 13
    NOT_SUPPORTED = 15


class DeviceBuffer:
    """Flat, contiguous device memory backed by a NumPy array."""

    def __init__(self, data: np.ndarray):
        if data.ndim != 1 or not data.flags.c_contiguous:
            raise ValueError("DeviceBuffer: data must be a flat contiguous array")
        self.data = data

    @property
    def size(self) -> int:
        return self.data.size

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    def ptr(self, offset: int = 0) -> 'DevicePointer':
        return DevicePointer(self, int(offset))

    def __repr__(self):
        return f"DeviceBuffer(size={self.size}, dtype={self.dtype})"


@dataclass(frozen=True)
class DevicePointer:
    buffer: DeviceBuffer
    offset: int = 0

    def __add__(self, elements: int) -> 'DevicePointer':
        return DevicePointer(self.buffer, self.offset + int(elements))

    def view(self, count: int) -> np.ndarray:
        """The ``count`` elements starting at this pointer."""
        if self.offset < 0 or self.offset + count > self.buffer.size:
            raise IndexError(f"Pointer range [{self.offset}, {self.offset + count}) outside {self.buffer}")
        return self.buffer.data[self.offset:self.offset + count]


class DevicePointerArray:
    """Offset table for one operand of an indexed-batch multiply.

    The host-side offsets become readable by an executor only after
    copy_to_device() has placed them in device memory.
    """

    def __init__(self, buffer: DeviceBuffer, offsets: np.ndarray):
        self.buffer = buffer
        self.host_offsets = np.asarray(offsets, dtype=np.int64)
        self._device: Optional[DeviceBuffer] = None

    def __len__(self):
        return len(self.host_offsets)

    def copy_to_device(self, device_buffer: DeviceBuffer) -> Status:
        if device_buffer.dtype != np.int64 or device_buffer.size < len(self.host_offsets):
            return Status.INVALID_VALUE
        device_buffer.data[:len(self.host_offsets)] = self.host_offsets
        self._device = device_buffer
        return Status.SUCCESS

    @property
    def is_device_visible(self) -> bool:
        return self._device is not None

    @property
    def device_offsets(self) -> np.ndarray:
        if self._device is None:
            raise RuntimeError("DevicePointerArray: offsets read before copy_to_device()")
        return self._device.data[:len(self.host_offsets)]

    def pointer(self, index: int) -> DevicePointer:
        return self.buffer.ptr(int(self.device_offsets[index]))


class Allocator:
    """Hands out device buffers; scratch buffers live for one ``with`` block."""

    def __init__(self):
        self.live_scratch_buffers = 0
        self.scratch_allocations = 0

    def allocate(self, count: int, dtype) -> DeviceBuffer:
        return DeviceBuffer(np.zeros(int(count), dtype=dtype))

    def to_device(self, array: np.ndarray) -> DeviceBuffer:
        return DeviceBuffer(np.array(array, copy=True).reshape(-1))

    @contextlib.contextmanager
    def scratch_buffer(self, count: int, dtype) -> Iterator[DeviceBuffer]:
        buffer = self.allocate(count, dtype)
        self.live_scratch_buffers += 1
        self.scratch_allocations += 1
        try:
            yield buffer
        finally:
            self.live_scratch_buffers -= 1
            buffer.data = np.empty(0, dtype=buffer.dtype)


class DeviceExecutor(abc.ABC):
    """Dense GEMM submissions in column-major convention.

    Every method computes ``C = alpha * op(A) @ op(B) + beta * C`` where op(A) is
    m x k and op(B) is k x n, and returns a Status instead of raising.
    """

    @abc.abstractmethod
    def dense_multiply(self, trans_a, trans_b, m, n, k, alpha, a, lda, b, ldb, beta, c, ldc) -> Status:
        ...

    @abc.abstractmethod
    def dense_strided_batched_multiply(self, trans_a, trans_b, m, n, k, alpha,
                                       a, lda, stride_a, b, ldb, stride_b,
                                       beta, c, ldc, stride_c, batch_count) -> Status:
        ...

    @abc.abstractmethod
    def dense_indexed_batched_multiply(self, trans_a, trans_b, m, n, k, alpha,
                                       a_array, lda, b_array, ldb,
                                       beta, c_array, ldc, batch_count) -> Status:
        ...

    def supports_structured_sparsity(self) -> bool:
        return False


def _column_major_view(ptr: DevicePointer, rows: int, cols: int, ld: int) -> Optional[np.ndarray]:
    # element (i, j) lives at ptr.offset + i + j * ld
    data = ptr.buffer.data
    if rows == 0 or cols == 0:
        return np.zeros((rows, cols), dtype=data.dtype)
    end = ptr.offset + ld * (cols - 1) + rows
    if ptr.offset < 0 or end > data.size:
        return None
    flat = data[ptr.offset:end]
    itemsize = data.dtype.itemsize
    return np.lib.stride_tricks.as_strided(flat, shape=(rows, cols), strides=(itemsize, ld * itemsize))


class NumpyDeviceExecutor(DeviceExecutor):
    """Reference executor computing with NumPy on host memory."""

    def __init__(self, structured_sparsity: bool = True):
        self.structured_sparsity = structured_sparsity

    def supports_structured_sparsity(self) -> bool:
        return self.structured_sparsity

    def _gemm(self, trans_a, trans_b, m, n, k, alpha, a, lda, b, ldb, beta, c, ldc) -> Status:
        if m < 0 or n < 0 or k < 0:
            return Status.INVALID_VALUE
        a_rows, a_cols = (k, m) if trans_a else (m, k)
        b_rows, b_cols = (n, k) if trans_b else (k, n)
        if lda < max(1, a_rows) or ldb < max(1, b_rows) or ldc < max(1, m):
            return Status.INVALID_VALUE
        if m == 0 or n == 0:
            return Status.SUCCESS

        op_a = _column_major_view(a, a_rows, a_cols, lda)
        op_b = _column_major_view(b, b_rows, b_cols, ldb)
        out = _column_major_view(c, m, n, ldc)
        if op_a is None or op_b is None or out is None:
            return Status.INVALID_VALUE
        if trans_a:
            op_a = op_a.T
        if trans_b:
            op_b = op_b.T

        acc = numeric_type_for(out.dtype).accumulate_dtype
        result = alpha * np.matmul(op_a.astype(acc), op_b.astype(acc))
        if beta != 0:
            result = result + beta * out.astype(acc)
        out[...] = result
        return Status.SUCCESS

    def dense_multiply(self, trans_a, trans_b, m, n, k, alpha, a, lda, b, ldb, beta, c, ldc) -> Status:
        return self._gemm(trans_a, trans_b, m, n, k, alpha, a, lda, b, ldb, beta, c, ldc)

    def dense_strided_batched_multiply(self, trans_a, trans_b, m, n, k, alpha,
                                       a, lda, stride_a, b, ldb, stride_b,
                                       beta, c, ldc, stride_c, batch_count) -> Status:
        if batch_count < 0:
            return Status.INVALID_VALUE
        for batch in range(batch_count):
            status = self._gemm(trans_a, trans_b, m, n, k, alpha,
                                a + batch * stride_a, lda,
                                b + batch * stride_b, ldb,
                                beta, c + batch * stride_c, ldc)
            if status != Status.SUCCESS:
                return status
        return Status.SUCCESS

    def dense_indexed_batched_multiply(self, trans_a, trans_b, m, n, k, alpha,
                                       a_array, lda, b_array, ldb,
                                       beta, c_array, ldc, batch_count) -> Status:
        arrays = (a_array, b_array, c_array)
        if batch_count < 0 or any(len(arr) < batch_count for arr in arrays):
            return Status.INVALID_VALUE
        if not all(arr.is_device_visible for arr in arrays):
            return Status.INVALID_VALUE
        for batch in range(batch_count):
            status = self._gemm(trans_a, trans_b, m, n, k, alpha,
                                a_array.pointer(batch), lda,
                                b_array.pointer(batch), ldb,
                                beta, c_array.pointer(batch), ldc)
            if status != Status.SUCCESS:
                return status
        return Status.SUCCESS


__all__ = [
    'Status',
    'DeviceBuffer',
    'DevicePointer',
    'DevicePointerArray',
    'Allocator',
    'DeviceExecutor',
    'NumpyDeviceExecutor',
]
