# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/broadcast.py

"""
Shape broadcaster for py-gpu-matmul

Reads the contraction sizes (M, K, N) off two operand shapes, honoring the
transpose flags, and splits off the batch-dimension prefixes that the batch
planner broadcasts.
"""

from dataclasses import dataclass

from .errors import InvalidShapeError
from .tensor_shape import TensorShape, as_shape


@dataclass(frozen=True)
class ContractionDims:
    """Result of reading two operand shapes as a (batched) matrix product.

    ``left_batch`` and ``right_batch`` are everything but the trailing two
    dimensions. A 1-D operand has an empty batch prefix and is flagged as a
    vector so the output shape can drop its axis.
    """
    m: int
    k: int
    n: int
    left_batch: TensorShape
    right_batch: TensorShape
    left_is_vector: bool
    right_is_vector: bool
    trans_a: bool
    trans_b: bool


def effective_transpose(shape, transpose: bool) -> bool:
    """A 1-D operand has no meaningful transpose; the flag is forced off."""
    return bool(transpose) and as_shape(shape).num_dimensions() != 1


def compute_contraction(left_shape, right_shape, trans_a: bool = False, trans_b: bool = False,
                        operation_name: str = "matmul") -> ContractionDims:
    """Compute the contraction sizes for ``left @ right``.

    Args:
        left_shape: Shape of the left operand, rank >= 1
        right_shape: Shape of the right operand, rank >= 1
        trans_a: Transpose the trailing two dimensions of the left operand
        trans_b: Transpose the trailing two dimensions of the right operand

    Returns:
        ContractionDims with M, K, N and both batch prefixes

    Raises:
        InvalidShapeError: If either operand is 0-D or the reduction sizes differ
    """
    left = as_shape(left_shape)
    right = as_shape(right_shape)
    left_rank = left.num_dimensions()
    right_rank = right.num_dimensions()

    if left_rank == 0 or right_rank == 0:
        raise InvalidShapeError(f"{operation_name}: Input arrays must have at least 1 dimension, "
                                f"got {left.dims} and {right.dims}")

    trans_a = effective_transpose(left, trans_a)
    trans_b = effective_transpose(right, trans_b)

    if left_rank == 1:
        m, left_k = 1, left[0]
        left_batch = TensorShape()
    else:
        rows, cols = left[left_rank - 2], left[left_rank - 1]
        m, left_k = (cols, rows) if trans_a else (rows, cols)
        left_batch = left.slice(0, left_rank - 2)

    if right_rank == 1:
        right_k, n = right[0], 1
        right_batch = TensorShape()
    else:
        rows, cols = right[right_rank - 2], right[right_rank - 1]
        right_k, n = (cols, rows) if trans_b else (rows, cols)
        right_batch = right.slice(0, right_rank - 2)

    if left_k != right_k:
        raise InvalidShapeError(f"{operation_name}: Matrix dimensions incompatible for multiplication: "
                                f"{left.dims} @ {right.dims} (K={left_k} vs K={right_k})")

    return ContractionDims(
        m=m, k=left_k, n=n,
        left_batch=left_batch,
        right_batch=right_batch,
        left_is_vector=left_rank == 1,
        right_is_vector=right_rank == 1,
        trans_a=trans_a,
        trans_b=trans_b,
    )


__all__ = ['ContractionDims', 'compute_contraction', 'effective_transpose']
