# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/matmul_ops.py

"""
Matrix product operator for py-gpu-matmul

This module provides the high-level interface: a MatMul operator that plans a
broadcast batched contraction, selects an execution strategy and dispatches it
to the device executor, plus an optional one-time 2:4 prepack of a constant
right-hand weight.
"""

import logging
from typing import Optional

import numpy as np

from .batch_planner import plan_contraction
from .config import MatMulAttributes
from .device import Allocator, DeviceBuffer, DeviceExecutor, NumpyDeviceExecutor
from .dispatch import DispatchExecutor
from .dtypes import numeric_type_for
from .errors import InvalidArgumentError, InvalidShapeError
from .prepack import PrepackParam, SparsePrepackManager, SparsePrepackState
from .sparse_backend import NumpySparseBackend, SparseBackend
from .strategy import select_strategy

logger = logging.getLogger(__name__)


def _ensure_contiguous(arr: np.ndarray) -> np.ndarray:
    """Ensure array is C-contiguous."""
    if not arr.flags.c_contiguous:
        return np.ascontiguousarray(arr)
    return arr


class MatMul:
    """Batched matrix product ``alpha * op(left) @ op(right)`` with NumPy broadcasting.

    Args:
        dtype: Compute type; float16, float32 or float64
        attributes: alpha and transpose flags (defaults: 1.0, no transpose)
        executor: Device executor for the dense path
        sparse_backend: Backend for 2:4 prepacked weights
        allocator: Source of device and scratch buffers

    The operator owns at most one prepacked weight. Prepacking the first time is
    not thread-safe; callers must not race it with other calls on the same
    operator.
    """

    def __init__(self, dtype=np.float32, attributes: Optional[MatMulAttributes] = None,
                 executor: Optional[DeviceExecutor] = None,
                 sparse_backend: Optional[SparseBackend] = None,
                 allocator: Optional[Allocator] = None):
        self.numeric_type = numeric_type_for(dtype)
        self.attributes = attributes if attributes is not None else MatMulAttributes()
        self.executor = executor if executor is not None else NumpyDeviceExecutor()
        self.sparse_backend = sparse_backend if sparse_backend is not None else NumpySparseBackend()
        self.allocator = allocator if allocator is not None else Allocator()
        self._prepack = SparsePrepackManager(
            self.numeric_type, self.attributes.trans_a, self.attributes.trans_b,
            self.executor, self.sparse_backend, self.allocator)
        self._dispatch = DispatchExecutor(self.executor, self.allocator, self.sparse_backend)

    @classmethod
    def from_attributes(cls, attributes, dtype=np.float32, **collaborators) -> 'MatMul':
        return cls(dtype, MatMulAttributes.from_dict(attributes), **collaborators)

    @property
    def alpha(self) -> float:
        return self.attributes.alpha

    @property
    def sparse_info(self) -> Optional[SparsePrepackState]:
        return self._prepack.state

    @property
    def is_prepacked(self) -> bool:
        return self._prepack.state is not None

    def prepack(self, tensor: np.ndarray, param: PrepackParam) -> bool:
        """Prepack a constant right-hand weight into the 2:4 compressed format.

        Returns:
            is_packed: False when the weight is not eligible (no hardware support,
            not the right-hand operand, or not flagged as 2:4)

        Raises:
            InvalidArgumentError: If the weight dtype is not the compute type
            SparsityValidationError: If the weight is not 2:4 sparse; the operator
                then keeps treating the weight as dense
        """
        if not isinstance(tensor, np.ndarray):
            raise InvalidArgumentError(f"{param.name} : constant initializer must be a numpy array")
        return self._prepack.prepack(tensor, param)

    def release(self) -> None:
        """Drop the prepacked weight."""
        self._prepack.release()

    def _validate_operand(self, arr, name: str) -> np.ndarray:
        if not isinstance(arr, np.ndarray):
            raise InvalidArgumentError(f"matmul: {name} must be a numpy array, got {type(arr).__name__}")
        if arr.dtype != self.numeric_type.dtype:
            raise InvalidArgumentError(f"matmul: Input arrays must have the same dtype as the operator "
                                       f"({self.numeric_type.name}), {name} is {arr.dtype}")
        return _ensure_contiguous(arr)

    def compute(self, left: np.ndarray, right: Optional[np.ndarray] = None) -> np.ndarray:
        """Compute ``alpha * op(left) @ op(right)``.

        Args:
            left: Left operand, rank >= 1
            right: Right operand, rank >= 1; may be omitted once a weight is prepacked

        Returns:
            Result with NumPy ``matmul`` output shape

        Raises:
            InvalidArgumentError: If an operand has the wrong type or dtype
            InvalidShapeError: If the shapes cannot be contracted
            BroadcastError: If the batch dimensions cannot be broadcast
            UnsupportedSparseBatchShapeError: If a prepacked weight needs an indexed batch
            BackendError: If a device call fails
        """
        state = self._prepack.state
        left = self._validate_operand(left, "left")
        if right is None:
            if state is None:
                raise InvalidArgumentError("matmul: right operand is required without a prepacked weight")
            right_shape = state.shape
        else:
            right = self._validate_operand(right, "right")
            right_shape = right.shape
            if state is not None and state.shape != right_shape:
                raise InvalidShapeError(f"matmul: right operand shape {right_shape} does not match the "
                                        f"prepacked weight {state.shape.dims}")

        plan = plan_contraction(left.shape, right_shape, self.attributes.trans_a, self.attributes.trans_b)
        output = np.empty(plan.output_shape.dims, dtype=self.numeric_type.dtype)

        # Bail out early if the output is going to be empty
        if output.size == 0:
            logger.debug("matmul: empty output %s, nothing to launch", plan.output_shape.dims)
            return output

        strategy = select_strategy(plan)
        self._dispatch.run(
            DeviceBuffer(left.reshape(-1)),
            DeviceBuffer(right.reshape(-1)) if right is not None else None,
            DeviceBuffer(output.reshape(-1)),
            plan, strategy, self.alpha, self.numeric_type, state)
        return output

    __call__ = compute


def matmul(a: np.ndarray, b: np.ndarray, alpha: float = 1.0,
           trans_a: bool = False, trans_b: bool = False) -> np.ndarray:
    """Batched matrix product with NumPy broadcasting and automatic type dispatch.

    Args:
        a: Left operand of shape (..., M, K), or (..., K, M) with trans_a
        b: Right operand of shape (..., K, N), or (..., N, K) with trans_b
        alpha: Scale applied to the product
        trans_a: Transpose the trailing two dimensions of ``a``
        trans_b: Transpose the trailing two dimensions of ``b``

    Returns:
        ``alpha * op(a) @ op(b)`` with the batch dimensions broadcast
    """
    if not isinstance(a, np.ndarray) or not isinstance(b, np.ndarray):
        raise InvalidArgumentError("matmul: Inputs must be numpy arrays")
    if a.dtype != b.dtype:
        raise InvalidArgumentError(f"matmul: Input arrays must have the same dtype, got {a.dtype} and {b.dtype}")
    op = MatMul(a.dtype, MatMulAttributes(alpha=alpha, trans_a=trans_a, trans_b=trans_b))
    return op.compute(a, b)


__all__ = ['MatMul', 'matmul']
