# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/sparse_backend.py

"""
Structured-sparse (2:4) backend for py-gpu-matmul

The sparse backend validates that a weight follows the 2:4 pattern along its
reduction axis, compresses it into a packed buffer and multiplies a dense
operand against the packed weight. The weight is always the right-hand operand
of ``left @ weight``; the backend sees it as the logical K x N matrix.

NumpySparseBackend is the reference implementation. Its packed layout is the
kept values, shape (K/4, 2, N), in the compute dtype, followed by one uint8
position (0-3) per kept value.
"""

import abc
from dataclasses import dataclass

import numpy as np

from .device import DeviceBuffer, DevicePointer, Status
from .dtypes import NumericType

GROUP_SIZE = 4
KEPT_PER_GROUP = 2


@dataclass(frozen=True)
class StructuredMatrixView:
    """Flattened 2-D view of a weight; the reduction axis is 0, or 1 when transposed."""
    data: np.ndarray
    transposed: bool = False

    def logical(self) -> np.ndarray:
        """The weight as a K x N matrix."""
        return self.data.T if self.transposed else self.data


@dataclass(frozen=True)
class SparseMatmulPlan:
    m: int
    k: int
    n: int
    trans_a: bool
    trans_b: bool
    numeric_type: NumericType
    compressed_size_bytes: int
    workspace_size: int

    @property
    def compressed_elements(self) -> int:
        """Compressed size rounded up to whole elements of the compute type."""
        itemsize = self.numeric_type.itemsize
        return -(-self.compressed_size_bytes // itemsize)


class SparseBackend(abc.ABC):
    """2:4 structured-sparse submissions.

    Validation returns a bool; compress and sparse_multiply return a Status
    instead of raising. The compressed layout is private to the backend.
    """

    @abc.abstractmethod
    def make_plan(self, m: int, k: int, n: int, trans_a: bool, trans_b: bool,
                  numeric_type: NumericType) -> SparseMatmulPlan:
        ...

    @abc.abstractmethod
    def validate_structured_sparsity(self, view: StructuredMatrixView) -> bool:
        ...

    @abc.abstractmethod
    def compress(self, plan: SparseMatmulPlan, weight: DevicePointer, out: DeviceBuffer) -> Status:
        ...

    @abc.abstractmethod
    def sparse_multiply(self, plan: SparseMatmulPlan, compressed: DeviceBuffer, dense: DevicePointer,
                        alpha: float, beta: float, out: DevicePointer, workspace: DeviceBuffer) -> Status:
        ...


class NumpySparseBackend(SparseBackend):
    """Reference 2:4 backend computing with NumPy."""

    def make_plan(self, m, k, n, trans_a, trans_b, numeric_type):
        kept = (k // GROUP_SIZE) * KEPT_PER_GROUP * n
        return SparseMatmulPlan(
            m=m, k=k, n=n,
            trans_a=bool(trans_a), trans_b=bool(trans_b),
            numeric_type=numeric_type,
            compressed_size_bytes=kept * (numeric_type.itemsize + 1),
            workspace_size=m * n,
        )

    def validate_structured_sparsity(self, view):
        weight = view.logical()
        if weight.ndim != 2:
            return False
        k, n = weight.shape
        if k % GROUP_SIZE != 0:
            return False
        nonzero = (weight != 0).reshape(k // GROUP_SIZE, GROUP_SIZE, n).sum(axis=1)
        return bool(np.all(nonzero <= KEPT_PER_GROUP))

    def _read_weight(self, plan: SparseMatmulPlan, weight: DevicePointer) -> np.ndarray:
        rows, cols = (plan.n, plan.k) if plan.trans_b else (plan.k, plan.n)
        stored = weight.view(rows * cols).reshape(rows, cols)
        return stored.T if plan.trans_b else stored

    def _split(self, plan: SparseMatmulPlan, raw: np.ndarray):
        groups = plan.k // GROUP_SIZE
        value_bytes = groups * KEPT_PER_GROUP * plan.n * plan.numeric_type.itemsize
        meta_count = groups * KEPT_PER_GROUP * plan.n
        values = raw[:value_bytes]
        meta = raw[value_bytes:value_bytes + meta_count]
        return values, meta

    def compress(self, plan, weight, out):
        if plan.k % GROUP_SIZE != 0:
            return Status.INVALID_VALUE
        if out.size < plan.compressed_elements or out.dtype != plan.numeric_type.dtype:
            return Status.INVALID_VALUE
        try:
            dense = self._read_weight(plan, weight)
        except IndexError:
            return Status.INVALID_VALUE

        groups = dense.reshape(plan.k // GROUP_SIZE, GROUP_SIZE, plan.n)
        # Nonzero positions first, then zero positions, each in ascending order.
        order = np.argsort(groups == 0, axis=1, kind='stable')
        positions = np.sort(order[:, :KEPT_PER_GROUP, :], axis=1)
        kept = np.take_along_axis(groups, positions, axis=1)

        raw = out.data.view(np.uint8)
        values, meta = self._split(plan, raw)
        values[...] = np.ascontiguousarray(kept, dtype=plan.numeric_type.dtype).view(np.uint8).reshape(-1)
        meta[...] = positions.astype(np.uint8).reshape(-1)
        return Status.SUCCESS

    def decompress(self, plan: SparseMatmulPlan, compressed: DeviceBuffer) -> np.ndarray:
        """Rebuild the logical K x N weight from a packed buffer."""
        groups = plan.k // GROUP_SIZE
        values, meta = self._split(plan, compressed.data.view(np.uint8))
        kept = values.view(plan.numeric_type.dtype).reshape(groups, KEPT_PER_GROUP, plan.n)
        positions = meta.astype(np.intp).reshape(groups, KEPT_PER_GROUP, plan.n)
        dense = np.zeros((groups, GROUP_SIZE, plan.n), dtype=plan.numeric_type.dtype)
        np.put_along_axis(dense, positions, kept, axis=1)
        return dense.reshape(plan.k, plan.n)

    def sparse_multiply(self, plan, compressed, dense, alpha, beta, out, workspace):
        m, k, n = plan.m, plan.k, plan.n
        if compressed.size < plan.compressed_elements or workspace.size < plan.workspace_size:
            return Status.INVALID_VALUE
        try:
            rows, cols = (k, m) if plan.trans_a else (m, k)
            left = dense.view(rows * cols).reshape(rows, cols)
            result = out.view(m * n).reshape(m, n)
        except IndexError:
            return Status.INVALID_VALUE
        if plan.trans_a:
            left = left.T

        acc = plan.numeric_type.accumulate_dtype
        weight = self.decompress(plan, compressed)
        scratch = workspace.data[:m * n].reshape(m, n)
        product = alpha * np.matmul(left.astype(acc), weight.astype(acc))
        if beta != 0:
            product = product + beta * result.astype(acc)
        scratch[...] = product
        result[...] = scratch
        return Status.SUCCESS


__all__ = [
    'GROUP_SIZE',
    'KEPT_PER_GROUP',
    'StructuredMatrixView',
    'SparseMatmulPlan',
    'SparseBackend',
    'NumpySparseBackend',
]
