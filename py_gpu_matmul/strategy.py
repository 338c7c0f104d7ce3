# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/strategy.py

"""
Strategy selector for py-gpu-matmul

Picks the cheapest execution shape that is equivalent to a ContractionPlan:

- Single: one plain 2-D multiply (batch size 1)
- StridedUniform: one strided-batched multiply (every offset sequence is an
  arithmetic progression)
- FullyIndexed: an indexed-batch multiply over explicit offset tables

Earlier strategies win whenever they apply.
"""

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from .batch_planner import ContractionPlan


@dataclass(frozen=True)
class Single:
    pass


@dataclass(frozen=True)
class StridedUniform:
    stride_left: int
    stride_right: int
    stride_out: int
    batch_count: int

    @property
    def broadcasts_right(self) -> bool:
        """True when the same right matrix is reused by every batch."""
        return self.stride_right == 0


@dataclass(frozen=True)
class FullyIndexed:
    pass


BatchStrategy = Union[Single, StridedUniform, FullyIndexed]


def uniform_stride(offsets: np.ndarray) -> Optional[int]:
    """Return the common step of ``offsets`` or None when it is not an arithmetic progression."""
    if len(offsets) < 2:
        return None
    stride = int(offsets[1] - offsets[0])
    if not np.all(np.diff(offsets) == stride):
        return None
    return stride


def _ranks_allow_strided(plan: ContractionPlan) -> bool:
    left_rank = plan.left_shape.num_dimensions()
    right_rank = plan.right_shape.num_dimensions()
    if not (left_rank >= 3 and right_rank >= 2):
        return False
    if right_rank >= 3:
        left_p = plan.left_batch_size
        right_p = plan.right_batch_size
        # A single matrix on either side is broadcast with stride 0.
        if left_p != right_p and left_p != 1 and right_p != 1:
            return False
    return True


def select_strategy(plan: ContractionPlan) -> BatchStrategy:
    """Select the execution strategy for ``plan``."""
    batch_size = plan.batch_size
    if batch_size == 1:
        return Single()

    if batch_size > 1 and _ranks_allow_strided(plan):
        stride_left = uniform_stride(plan.left_offsets)
        stride_right = uniform_stride(plan.right_offsets)
        stride_out = uniform_stride(plan.output_offsets)
        if stride_left is not None and stride_right is not None and stride_out is not None:
            return StridedUniform(
                stride_left=stride_left,
                stride_right=stride_right,
                stride_out=stride_out,
                batch_count=batch_size,
            )

    return FullyIndexed()


__all__ = [
    'Single',
    'StridedUniform',
    'FullyIndexed',
    'BatchStrategy',
    'select_strategy',
    'uniform_stride',
]
