# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/dispatch.py

"""
Dispatch executor for py-gpu-matmul

The only component that talks to the device collaborators. Given the operand
buffers, a ContractionPlan and its BatchStrategy it issues the dense GEMM call
shape that matches the strategy, or runs the sparse path against a prepacked
weight.

Operands are row-major while the device executor is column-major, so every
dense call swaps the operands (and their transpose flags): the row-major
product C = A @ B is issued as the column-major product C^T = B^T @ A^T.
"""

import contextlib
import logging
from typing import Optional

import numpy as np

from .batch_planner import ContractionPlan
from .device import Allocator, DeviceBuffer, DeviceExecutor, DevicePointerArray
from .dtypes import NumericType
from .errors import InvalidShapeError, UnsupportedSparseBatchShapeError, check_status
from .prepack import SparsePrepackState
from .sparse_backend import SparseBackend
from .strategy import BatchStrategy, FullyIndexed, Single, StridedUniform

logger = logging.getLogger(__name__)

# Output is never accumulated into.
BETA = 0.0


def leading_dimensions(plan: ContractionPlan):
    """Row-major leading dimensions (lda, ldb, ldc), at least 1."""
    lda = plan.m if plan.trans_a else plan.k
    ldb = plan.k if plan.trans_b else plan.n
    return max(1, lda), max(1, ldb), max(1, plan.n)


class DispatchExecutor:

    def __init__(self, executor: DeviceExecutor, allocator: Allocator,
                 sparse_backend: Optional[SparseBackend] = None):
        self.executor = executor
        self.allocator = allocator
        self.sparse_backend = sparse_backend

    def run(self, left: DeviceBuffer, right: Optional[DeviceBuffer], output: DeviceBuffer,
            plan: ContractionPlan, strategy: BatchStrategy, alpha: float,
            numeric_type: NumericType, prepack_state: Optional[SparsePrepackState] = None) -> None:
        """Write ``alpha * left @ right`` into ``output``.

        Raises:
            UnsupportedSparseBatchShapeError: If a prepacked weight meets a FullyIndexed plan
            BackendError: If a collaborator call fails
        """
        if plan.output_shape.size() == 0:
            return

        logger.debug("dispatch %s: M=%d K=%d N=%d batches=%d sparse=%s",
                     type(strategy).__name__, plan.m, plan.k, plan.n, plan.batch_size,
                     prepack_state is not None)

        if prepack_state is not None:
            self._run_sparse(left, output, plan, strategy, alpha, numeric_type, prepack_state)
        else:
            self._run_dense(left, right, output, plan, strategy, alpha)

    def _run_dense(self, left, right, output, plan, strategy, alpha):
        lda, ldb, ldc = leading_dimensions(plan)
        m, n, k = plan.m, plan.n, plan.k

        if isinstance(strategy, Single):
            status = self.executor.dense_multiply(
                plan.trans_b, plan.trans_a, n, m, k, alpha,
                right.ptr(plan.right_offsets[0]), ldb,
                left.ptr(plan.left_offsets[0]), lda,
                BETA, output.ptr(plan.output_offsets[0]), ldc)
            check_status(status, "dense_multiply")
            return

        if isinstance(strategy, StridedUniform):
            status = self.executor.dense_strided_batched_multiply(
                plan.trans_b, plan.trans_a, n, m, k, alpha,
                right.ptr(plan.right_offsets[0]), ldb, strategy.stride_right,
                left.ptr(plan.left_offsets[0]), lda, strategy.stride_left,
                BETA, output.ptr(plan.output_offsets[0]), ldc, strategy.stride_out,
                strategy.batch_count)
            check_status(status, "dense_strided_batched_multiply")
            return

        batch_count = plan.batch_size
        left_array = DevicePointerArray(left, plan.left_offsets)
        right_array = DevicePointerArray(right, plan.right_offsets)
        output_array = DevicePointerArray(output, plan.output_offsets)
        with contextlib.ExitStack() as stack:
            for name, array in (("left", left_array), ("right", right_array), ("output", output_array)):
                device_offsets = stack.enter_context(self.allocator.scratch_buffer(batch_count, np.int64))
                # The copy has to land before the batched call reads the table.
                check_status(array.copy_to_device(device_offsets), f"copy_to_device({name})")

            status = self.executor.dense_indexed_batched_multiply(
                plan.trans_b, plan.trans_a, n, m, k, alpha,
                right_array, ldb,
                left_array, lda,
                BETA, output_array, ldc,
                batch_count)
            check_status(status, "dense_indexed_batched_multiply")

    def _run_sparse(self, left, output, plan, strategy, alpha, numeric_type, state):
        if isinstance(strategy, FullyIndexed):
            raise UnsupportedSparseBatchShapeError(
                f"matmul: prepacked 2:4 weight {state.shape.dims} cannot be used with batch shape "
                f"{plan.batch_shape.dims}; the sparse path needs a single or uniformly strided batch")

        reuses_compressed = isinstance(strategy, Single) or strategy.broadcasts_right
        if reuses_compressed and state.plan.k * state.plan.n != plan.k * plan.n:
            raise InvalidShapeError(f"matmul: prepacked weight compressed as {state.plan.k} x {state.plan.n} "
                                    f"does not match the computed K*N={plan.k * plan.n}")

        backend = self.sparse_backend
        sparse_plan = backend.make_plan(plan.m, plan.k, plan.n, plan.trans_a, plan.trans_b, numeric_type)

        with self.allocator.scratch_buffer(sparse_plan.workspace_size, numeric_type.dtype) as workspace:
            if isinstance(strategy, Single):
                status = backend.sparse_multiply(
                    sparse_plan, state.compressed, left.ptr(plan.left_offsets[0]),
                    alpha, BETA, output.ptr(plan.output_offsets[0]), workspace)
                check_status(status, "sparse_multiply")
                return

            left_ptr = left.ptr(plan.left_offsets[0])
            out_ptr = output.ptr(plan.output_offsets[0])

            if strategy.broadcasts_right:
                # One weight for every batch: the prepacked compression is reused.
                for batch in range(strategy.batch_count):
                    status = backend.sparse_multiply(
                        sparse_plan, state.compressed,
                        left_ptr + batch * strategy.stride_left,
                        alpha, BETA, out_ptr + batch * strategy.stride_out, workspace)
                    check_status(status, "sparse_multiply")
                return

            # Each batch has its own weight matrix, compressed right before its multiply.
            weight_ptr = state.device_dense.ptr(plan.right_offsets[0])
            with self.allocator.scratch_buffer(sparse_plan.compressed_elements, numeric_type.dtype) as compressed:
                for batch in range(strategy.batch_count):
                    logger.debug("compressing weight batch %d of %d", batch + 1, strategy.batch_count)
                    status = backend.compress(sparse_plan, weight_ptr + batch * strategy.stride_right, compressed)
                    check_status(status, "compress")
                    status = backend.sparse_multiply(
                        sparse_plan, compressed,
                        left_ptr + batch * strategy.stride_left,
                        alpha, BETA, out_ptr + batch * strategy.stride_out, workspace)
                    check_status(status, "sparse_multiply")


__all__ = ['DispatchExecutor', 'leading_dimensions', 'BETA']
