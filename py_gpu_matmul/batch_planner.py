# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/batch_planner.py

"""
Batch offset planner for py-gpu-matmul

Broadcasts the batch prefixes of both operands with NumPy rules and expands the
broadcast batch shape into one (left, right, output) element-offset triple per
logical batch. Every executor downstream works from these offsets.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .broadcast import compute_contraction
from .errors import BroadcastError
from .tensor_shape import TensorShape, as_shape


@dataclass(frozen=True)
class ContractionPlan:
    """Per-invocation description of a batched matrix product.

    The three offset arrays are read-only int64 arrays of equal length, one
    entry per logical batch, measured in elements from the start of each
    operand's buffer.
    """
    m: int
    k: int
    n: int
    left_shape: TensorShape
    right_shape: TensorShape
    trans_a: bool
    trans_b: bool
    batch_shape: TensorShape
    output_shape: TensorShape
    left_offsets: np.ndarray
    right_offsets: np.ndarray
    output_offsets: np.ndarray

    @property
    def batch_size(self) -> int:
        return len(self.output_offsets)

    @property
    def left_batch_size(self) -> int:
        return _batch_prefix(self.left_shape).size()

    @property
    def right_batch_size(self) -> int:
        return _batch_prefix(self.right_shape).size()


def _batch_prefix(shape: TensorShape) -> TensorShape:
    rank = shape.num_dimensions()
    return shape.slice(0, rank - 2) if rank > 2 else TensorShape()


def broadcast_batch_shape(left_batch, right_batch, operation_name: str = "matmul") -> TensorShape:
    """Broadcast two batch prefixes with NumPy rules.

    Raises:
        BroadcastError: If a pair of aligned dimensions differs and neither is 1
    """
    left = as_shape(left_batch).dims
    right = as_shape(right_batch).dims
    rank = max(len(left), len(right))
    left = (1,) * (rank - len(left)) + left
    right = (1,) * (rank - len(right)) + right

    dims = []
    for axis, (l, r) in enumerate(zip(left, right)):
        if l == r or r == 1:
            dims.append(l)
        elif l == 1:
            dims.append(r)
        else:
            raise BroadcastError(f"{operation_name}: Batch dimensions {left} and {right} cannot be "
                                 f"broadcast (axis {axis}: {l} vs {r})")
    return TensorShape(dims)


def _broadcast_strides(batch, broadcast_shape: Tuple[int, ...], matrix_size: int) -> np.ndarray:
    """Element stride of each broadcast axis for one operand; 0 where it broadcasts."""
    dims = batch.dims
    dims = (1,) * (len(broadcast_shape) - len(dims)) + dims
    strides = np.zeros(len(dims), dtype=np.int64)
    step = matrix_size
    for axis in range(len(dims) - 1, -1, -1):
        if dims[axis] != 1:
            strides[axis] = step
        step *= dims[axis]
    return strides


def _readonly(offsets: np.ndarray) -> np.ndarray:
    offsets = np.ascontiguousarray(offsets, dtype=np.int64)
    offsets.flags.writeable = False
    return offsets


def plan_contraction(left_shape, right_shape, trans_a: bool = False, trans_b: bool = False,
                     operation_name: str = "matmul") -> ContractionPlan:
    """Build the ContractionPlan for ``left @ right``.

    Args:
        left_shape: Shape of the left operand
        right_shape: Shape of the right operand
        trans_a: Transpose flag of the left operand (ignored for 1-D operands)
        trans_b: Transpose flag of the right operand (ignored for 1-D operands)

    Returns:
        ContractionPlan with one offset triple per broadcast batch

    Raises:
        InvalidShapeError: If the operand shapes cannot be contracted
        BroadcastError: If the batch prefixes cannot be broadcast
    """
    left = as_shape(left_shape)
    right = as_shape(right_shape)
    dims = compute_contraction(left, right, trans_a, trans_b, operation_name)
    batch_shape = broadcast_batch_shape(dims.left_batch, dims.right_batch, operation_name)

    output_dims = list(batch_shape.dims)
    if not dims.left_is_vector:
        output_dims.append(dims.m)
    if not dims.right_is_vector:
        output_dims.append(dims.n)

    batch_size = batch_shape.size()
    if batch_shape.num_dimensions() == 0:
        left_offsets = np.zeros(1, dtype=np.int64)
        right_offsets = np.zeros(1, dtype=np.int64)
    elif batch_size == 0:
        left_offsets = np.zeros(0, dtype=np.int64)
        right_offsets = np.zeros(0, dtype=np.int64)
    else:
        coords = np.unravel_index(np.arange(batch_size, dtype=np.int64), batch_shape.dims)
        left_strides = _broadcast_strides(dims.left_batch, batch_shape.dims, dims.m * dims.k)
        right_strides = _broadcast_strides(dims.right_batch, batch_shape.dims, dims.k * dims.n)
        left_offsets = np.zeros(batch_size, dtype=np.int64)
        right_offsets = np.zeros(batch_size, dtype=np.int64)
        for axis, coord in enumerate(coords):
            left_offsets += coord.astype(np.int64) * left_strides[axis]
            right_offsets += coord.astype(np.int64) * right_strides[axis]

    # The output never broadcasts: batches are laid out back to back.
    output_offsets = np.arange(len(left_offsets), dtype=np.int64) * (dims.m * dims.n)

    return ContractionPlan(
        m=dims.m, k=dims.k, n=dims.n,
        left_shape=left,
        right_shape=right,
        trans_a=dims.trans_a,
        trans_b=dims.trans_b,
        batch_shape=batch_shape,
        output_shape=TensorShape(output_dims),
        left_offsets=_readonly(left_offsets),
        right_offsets=_readonly(right_offsets),
        output_offsets=_readonly(output_offsets),
    )


__all__ = ['ContractionPlan', 'broadcast_batch_shape', 'plan_contraction']
