"""
Test utilities for py-gpu-matmul test suite.

Common functions for validation, reference results and collaborator spies.
"""

import numpy as np
from collections import Counter
from typing import Callable

from py_gpu_matmul import NumpyDeviceExecutor, NumpySparseBackend, Status


def assert_array_close(actual, expected, dtype, tol_bits=8):
    """
    Assert that two arrays are close with appropriate tolerances for the dtype.
    """
    assert actual.shape == expected.shape, f"Shapes do not match: {actual.shape} != {expected.shape}"
    assert actual.dtype == expected.dtype, f"Dtypes do not match: {actual.dtype} != {expected.dtype}"
    if dtype == np.float16:
        significand_bits = 11
    elif dtype == np.float32:
        significand_bits = 24
    elif dtype == np.float64:
        significand_bits = 53
    else:
        assert False, f"This should not be possible: {dtype}"
    rtol = 0.5**(significand_bits - tol_bits)
    success = np.allclose(actual, expected, rtol=rtol, atol=rtol)
    if not success:
        assert False, f"Float arrays not close for dtype {dtype}"


def validate_basic_properties(result, expected_shape, expected_dtype):
    """
    Validate basic properties of a result array.
    """
    assert isinstance(result, np.ndarray), f"Result should be numpy array, got {type(result)}"
    assert result.shape == expected_shape, f"Wrong shape: expected {expected_shape}, got {result.shape}"
    assert result.dtype == expected_dtype, f"Wrong dtype: expected {expected_dtype}, got {result.dtype}"


def validate_function_error_cases(func: Callable, test_cases: list):
    """
    Test that a function properly raises errors for invalid inputs.

    Args:
        func: The function to test
        test_cases: List of (args, kwargs, expected_exception_type, description)
    """
    for args, kwargs, expected_exception, description in test_cases:
        try:
            func(*args, **kwargs)
        except expected_exception:
            continue
        except Exception as e:
            raise AssertionError(f"Expected {expected_exception.__name__} for {description}, "
                                 f"got {type(e).__name__}: {e}")
        raise AssertionError(f"Expected {expected_exception.__name__} for {description}, but function succeeded")


def get_numpy_reference_matmul(a, b, alpha=1.0, trans_a=False, trans_b=False):
    """NumPy reference for the batched product, computed in float64."""
    a64 = a.astype(np.float64)
    b64 = b.astype(np.float64)
    if trans_a and a.ndim > 1:
        a64 = np.swapaxes(a64, -1, -2)
    if trans_b and b.ndim > 1:
        b64 = np.swapaxes(b64, -1, -2)
    return (alpha * np.matmul(a64, b64)).astype(a.dtype)


def make_2of4_weight(dtype, shape, transposed=False, seed=42):
    """
    Random weight with exactly two nonzeros in every group of four along the
    reduction axis (axis -2, or axis -1 when the weight is stored transposed).
    """
    generator = np.random.default_rng(seed)
    shape = tuple(shape)
    values = generator.uniform(low=0.5, high=1.5, size=shape)
    if len(shape) == 1:
        grouped, axis = (shape[0] // 4, 4), -1
    elif transposed:
        grouped, axis = shape[:-1] + (shape[-1] // 4, 4), -1
    else:
        grouped, axis = shape[:-2] + (shape[-2] // 4, 4, shape[-1]), -2
    scores = generator.random(grouped)
    keep = np.argsort(np.argsort(scores, axis=axis), axis=axis) < 2
    return (values * keep.reshape(shape)).astype(dtype)


class CountingDeviceExecutor(NumpyDeviceExecutor):
    """Reference executor that records every submission."""

    def __init__(self, structured_sparsity=True):
        super().__init__(structured_sparsity)
        self.calls = Counter()
        self.last_args = {}

    def dense_multiply(self, *args):
        self.calls['dense_multiply'] += 1
        self.last_args['dense_multiply'] = args
        return super().dense_multiply(*args)

    def dense_strided_batched_multiply(self, *args):
        self.calls['dense_strided_batched_multiply'] += 1
        self.last_args['dense_strided_batched_multiply'] = args
        return super().dense_strided_batched_multiply(*args)

    def dense_indexed_batched_multiply(self, *args):
        self.calls['dense_indexed_batched_multiply'] += 1
        self.last_args['dense_indexed_batched_multiply'] = args
        return super().dense_indexed_batched_multiply(*args)

    @property
    def total_calls(self):
        return sum(self.calls.values())


class CountingSparseBackend(NumpySparseBackend):
    """Reference 2:4 backend that records validate/compress/multiply calls."""

    def __init__(self):
        self.calls = Counter()

    def validate_structured_sparsity(self, view):
        self.calls['validate'] += 1
        return super().validate_structured_sparsity(view)

    def compress(self, plan, weight, out):
        self.calls['compress'] += 1
        return super().compress(plan, weight, out)

    def sparse_multiply(self, *args):
        self.calls['sparse_multiply'] += 1
        return super().sparse_multiply(*args)


class FailingDeviceExecutor(NumpyDeviceExecutor):
    """Executor whose submissions all fail with the given status."""

    def __init__(self, status=Status.EXECUTION_FAILED):
        super().__init__()
        self.status = status

    def dense_multiply(self, *args):
        return self.status

    def dense_strided_batched_multiply(self, *args):
        return self.status

    def dense_indexed_batched_multiply(self, *args):
        return self.status


class FailingSparseBackend(NumpySparseBackend):
    """Reference 2:4 backend whose calls named in ``failing`` return ``status``."""

    def __init__(self, status=Status.EXECUTION_FAILED):
        self.status = status
        self.failing = set()

    def compress(self, plan, weight, out):
        if 'compress' in self.failing:
            return self.status
        return super().compress(plan, weight, out)

    def sparse_multiply(self, *args):
        if 'sparse_multiply' in self.failing:
            return self.status
        return super().sparse_multiply(*args)


class ErrorCaseBuilder:
    """Helper class to build error test cases systematically."""

    def __init__(self):
        self.cases = []

    def add_case(self, description: str, exception, *args, **kwargs):
        """Add a test case expecting ``exception``."""
        self.cases.append((args, kwargs, exception, description))
        return self

    def build(self):
        """Return the list of test cases."""
        return self.cases
