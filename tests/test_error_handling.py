"""
Comprehensive error handling tests for py-gpu-matmul.

Tests error conditions, edge cases, and invalid inputs across all modules:
- Operand validation (types, dtypes, ranks, reduction sizes)
- Batch broadcasting failures
- Prepack argument errors
- Collaborator failures surfaced as BackendError
- Exception hierarchy
"""

import pytest
import numpy as np
import py_gpu_matmul
from py_gpu_matmul import (
    BackendError, BroadcastError, InvalidArgumentError, InvalidShapeError, MatMul, MatMulError,
    PrepackParam, SparsityValidationError, Status, UnsupportedSparseBatchShapeError, check_status,
    numeric_type_for
)
from .utils import ErrorCaseBuilder, FailingDeviceExecutor, validate_function_error_cases


class TestOperandErrorHandling:
    """Test error handling for operator inputs."""

    def test_operand_error_cases(self):
        op = MatMul(np.float32)
        f32 = np.ones((3, 4), dtype=np.float32)
        cases = (ErrorCaseBuilder()
                 .add_case("left not an array", InvalidArgumentError, [[1.0]], f32)
                 .add_case("right not an array", InvalidArgumentError, f32, [[1.0]])
                 .add_case("left wrong dtype", InvalidArgumentError, f32.astype(np.float64), np.ones((4, 2), dtype=np.float32))
                 .add_case("right wrong dtype", InvalidArgumentError, f32, np.ones((4, 2), dtype=np.float16))
                 .add_case("scalar left", InvalidShapeError, np.ones((), dtype=np.float32), f32)
                 .add_case("scalar right", InvalidShapeError, f32, np.ones((), dtype=np.float32))
                 .add_case("reduction mismatch", InvalidShapeError, f32, np.ones((5, 2), dtype=np.float32))
                 .add_case("vector mismatch", InvalidShapeError, np.ones(3, dtype=np.float32), np.ones(4, dtype=np.float32))
                 .add_case("batch mismatch", BroadcastError, np.ones((2, 3, 4), dtype=np.float32),
                           np.ones((3, 4, 2), dtype=np.float32))
                 .build())
        validate_function_error_cases(op.compute, cases)

    def test_dimension_mismatch_message(self):
        with pytest.raises(ValueError, match="Matrix dimensions incompatible for multiplication"):
            py_gpu_matmul.matmul(np.ones((10, 8), dtype=np.float32), np.ones((5, 12), dtype=np.float32))

    @pytest.mark.parametrize("dtype", [np.int32, np.complex64, np.bool_, np.int8])
    def test_unsupported_dtypes(self, dtype):
        with pytest.raises(InvalidArgumentError, match="Unsupported dtype"):
            MatMul(dtype)
        with pytest.raises(InvalidArgumentError):
            py_gpu_matmul.matmul(np.ones((2, 2), dtype=dtype), np.ones((2, 2), dtype=dtype))

    def test_unsupported_dtype_object(self):
        with pytest.raises(InvalidArgumentError):
            numeric_type_for("not-a-dtype")

    def test_supported_dtypes(self):
        assert set(py_gpu_matmul.supported_dtypes()) == {np.dtype(np.float16), np.dtype(np.float32),
                                                         np.dtype(np.float64)}
        assert numeric_type_for(np.float16).accumulate_dtype == np.float32


class TestBackendErrorHandling:

    def test_check_status(self):
        check_status(Status.SUCCESS, "noop")
        check_status(0, "noop")
        with pytest.raises(BackendError) as exc_info:
            check_status(Status.INVALID_VALUE, "dense_multiply")
        assert exc_info.value.status == Status.INVALID_VALUE
        assert "dense_multiply failed with status INVALID_VALUE (7)" in str(exc_info.value)

    def test_plain_integer_status(self):
        with pytest.raises(BackendError, match="status 42"):
            check_status(42, "compress")

    @pytest.mark.parametrize("status", [Status.NOT_INITIALIZED, Status.ALLOC_FAILED, Status.ARCH_MISMATCH,
                                        Status.NOT_SUPPORTED])
    def test_failure_status_propagates(self, status):
        op = MatMul(np.float64, executor=FailingDeviceExecutor(status))
        with pytest.raises(BackendError) as exc_info:
            op.compute(np.ones((2, 3)), np.ones((3, 2)))
        assert exc_info.value.status == status


class TestExceptionHierarchy:

    @pytest.mark.parametrize("exc_type,base", [
        (InvalidArgumentError, ValueError),
        (InvalidShapeError, ValueError),
        (BroadcastError, ValueError),
        (SparsityValidationError, ValueError),
        (UnsupportedSparseBatchShapeError, RuntimeError),
        (BackendError, RuntimeError),
    ])
    def test_hierarchy(self, exc_type, base):
        assert issubclass(exc_type, MatMulError)
        assert issubclass(exc_type, base)

    def test_prepack_errors_leave_operator_usable(self):
        op = MatMul(np.float32)
        param = PrepackParam("W", input_idx=1, is_2x4_format=True)
        with pytest.raises(MatMulError):
            op.prepack(np.ones((8, 4), dtype=np.float32), param)
        with pytest.raises(MatMulError):
            op.prepack(np.ones((8, 4), dtype=np.float16), param)
        result = op.compute(np.ones((2, 8), dtype=np.float32), np.ones((8, 4), dtype=np.float32))
        np.testing.assert_array_equal(result, np.full((2, 4), 8.0, dtype=np.float32))
