# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/prepack.py

"""
Sparse prepack manager for py-gpu-matmul

Turns the constant right-hand weight of a MatMul operator into the 2:4
compressed representation exactly once. The resulting SparsePrepackState is
owned by the operator, never recomputed, and only read by the sparse dispatch
path.

The manager does no locking. The first prepack of an operator must not race
with another call on the same operator; callers serialize it.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .broadcast import effective_transpose
from .device import Allocator, DeviceBuffer, DeviceExecutor
from .dtypes import NumericType
from .errors import InvalidArgumentError, InvalidShapeError, SparsityValidationError, check_status
from .sparse_backend import GROUP_SIZE, SparseBackend, SparseMatmulPlan, StructuredMatrixView
from .tensor_shape import TensorShape

logger = logging.getLogger(__name__)

# Position of the weight among the operator inputs: the right-hand operand.
SPARSE_INPUT_INDEX = 1


@dataclass(frozen=True)
class PrepackParam:
    name: str
    input_idx: int
    is_2x4_format: bool = False


@dataclass(frozen=True)
class SparsePrepackState:
    """Write-once result of a successful prepack.

    ``k`` and ``n`` describe the flattened stored weight (leading dimensions
    folded into the rows). ``device_dense`` keeps the uncompressed device copy
    for batches that need their own compression.
    """
    param: PrepackParam
    shape: TensorShape
    k: int
    n: int
    device_dense: DeviceBuffer
    compressed: DeviceBuffer
    plan: SparseMatmulPlan
    validated: bool = True


def flatten_weight_shape(shape: TensorShape):
    """Fold a weight shape into (rows, cols); a 1-D weight becomes K x 1."""
    rank = shape.num_dimensions()
    if rank == 0:
        raise InvalidShapeError("prepack: weight must have at least 1 dimension")
    if rank == 1:
        return shape[0], 1
    return shape.size_to_dimension(rank - 1), shape[rank - 1]


class SparsePrepackManager:

    def __init__(self, numeric_type: NumericType, trans_a: bool, trans_b: bool,
                 executor: DeviceExecutor, sparse_backend: SparseBackend, allocator: Allocator):
        self.numeric_type = numeric_type
        self.trans_a = trans_a
        self.trans_b = trans_b
        self.executor = executor
        self.sparse_backend = sparse_backend
        self.allocator = allocator
        self._state: Optional[SparsePrepackState] = None

    @property
    def state(self) -> Optional[SparsePrepackState]:
        return self._state

    def release(self) -> None:
        self._state = None

    def prepack(self, tensor: np.ndarray, param: PrepackParam) -> bool:
        """Validate and compress ``tensor`` if it is eligible.

        Returns:
            True if the operator now holds a prepacked weight

        Raises:
            InvalidArgumentError: If the weight has the wrong dtype
            SparsityValidationError: If the weight is not 2:4 sparse
        """
        shape = TensorShape(tensor.shape)
        if self._state is not None:
            if self._state.shape != shape:
                raise InvalidArgumentError(f"{param.name} : operator already holds a prepacked weight "
                                           f"of shape {self._state.shape.dims}, got {shape.dims}")
            logger.debug("prepack cache hit for %s", param.name)
            return True

        if not self.executor.supports_structured_sparsity():
            return False
        if param.input_idx != SPARSE_INPUT_INDEX or not param.is_2x4_format:
            return False

        if tensor.dtype != self.numeric_type.dtype:
            raise InvalidArgumentError(f"{param.name} : wrong data type for the constant initializer")

        rows, cols = flatten_weight_shape(shape)
        trans_b = effective_transpose(shape, self.trans_b)
        device_dense = self.allocator.to_device(np.ascontiguousarray(tensor))
        view = StructuredMatrixView(device_dense.data.reshape(rows, cols), transposed=trans_b)
        rank = shape.num_dimensions()
        batch_k = shape[rank - 1] if trans_b else shape[rank - 2] if rank >= 2 else shape[0]
        # Groups of the flattened view must not straddle two batch matrices.
        groups_aligned = rank < 3 or batch_k % GROUP_SIZE == 0
        if not groups_aligned or not self.sparse_backend.validate_structured_sparsity(view):
            logger.warning("%s : 2:4 data format validation failed; the weight stays dense. "
                           "Fix the initializer or drop its 2:4 flag.", param.name)
            raise SparsityValidationError(f"{param.name} : 2:4 data format validation failed")

        k, n = (cols, rows) if trans_b else (rows, cols)
        # Compression depends on K and N only.
        plan = self.sparse_backend.make_plan(1, k, n, self.trans_a, trans_b, self.numeric_type)
        compressed = self.allocator.allocate(plan.compressed_elements, self.numeric_type.dtype)
        check_status(self.sparse_backend.compress(plan, device_dense.ptr(), compressed), "compress")

        self._state = SparsePrepackState(
            param=param,
            shape=shape,
            k=rows,
            n=cols,
            device_dense=device_dense,
            compressed=compressed,
            plan=plan,
        )
        logger.info("prepacked %s: shape %s flattened to %d x %d, %d compressed bytes",
                    param.name, shape.dims, rows, cols, plan.compressed_size_bytes)
        return True


__all__ = [
    'PrepackParam',
    'SparsePrepackState',
    'SparsePrepackManager',
    'flatten_weight_shape',
    'SPARSE_INPUT_INDEX',
]
