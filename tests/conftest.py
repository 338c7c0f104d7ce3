"""
Pytest configuration and fixtures for py-gpu-matmul test suite.

This module provides common fixtures, test data, and configuration
for testing the contraction planner, the dispatcher and the sparse prepack.
"""

import pytest
import numpy as np
import sys
import os

# Add the package to the path for testing
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

try:
    import py_gpu_matmul
    PACKAGE_AVAILABLE = True
except ImportError:
    PACKAGE_AVAILABLE = False

# Skip all tests if the package cannot be imported
pytestmark = pytest.mark.skipif(not PACKAGE_AVAILABLE, reason="py_gpu_matmul not importable")

# All supported dtypes for testing
ALL_DTYPES = [np.float16, np.float32, np.float64]

# Dtypes with enough precision for tight comparisons
GEMM_DTYPES = [np.float32, np.float64]

# (left_shape, right_shape) pairs covering every strategy and the 1-D special cases
BROADCAST_SHAPE_PAIRS = [
    ((3, 4), (4, 2)),
    ((4,), (4, 2)),
    ((3, 4), (4,)),
    ((4,), (4,)),
    ((2, 3, 4), (2, 4, 2)),
    ((1, 3, 4), (5, 4, 2)),
    ((5, 3, 4), (4, 2)),
    ((5, 3, 4), (1, 4, 2)),
    ((3, 4), (5, 4, 2)),
    ((2, 1, 3, 4), (1, 3, 4, 2)),
    ((2, 3, 3, 4), (3, 4, 2)),
    ((6, 3, 4), (4,)),
    ((4,), (2, 4, 3)),
]


@pytest.fixture(params=ALL_DTYPES, ids=lambda x: x.__name__)
def dtype_all(request):
    """Fixture providing all supported dtypes."""
    return request.param


@pytest.fixture(params=GEMM_DTYPES, ids=lambda x: x.__name__)
def dtype_float(request):
    """Fixture providing float32 and float64."""
    return request.param


@pytest.fixture(params=BROADCAST_SHAPE_PAIRS, ids=lambda p: f"{p[0]}x{p[1]}")
def shape_pair(request):
    """Fixture providing each (left_shape, right_shape) pair."""
    return request.param


@pytest.fixture
def test_input_tensor_random():
    """Generate random tensor with values in [0.5, 1.5)"""
    def _generate(dtype, shape, seed=42):
        generator = np.random.default_rng(seed)
        return generator.uniform(low=0.5, high=1.5, size=shape).astype(dtype)
    return _generate


@pytest.fixture
def test_input_tensor_incremental():
    """Generate incremental tensor"""
    def _generate(dtype, shape, start=0):
        count = int(np.prod(shape)) if len(shape) else 1
        return np.arange(start, start + count).astype(dtype).reshape(shape)
    return _generate


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "performance: marks tests as performance benchmarks"
    )
    config.addinivalue_line(
        "markers", "sparse: marks tests of the 2:4 prepack path"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        # Mark integration tests
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)

        # Mark sparse tests
        if "sparse" in item.nodeid:
            item.add_marker(pytest.mark.sparse)

        # Mark performance tests
        if "performance" in item.nodeid or "benchmark" in item.nodeid:
            item.add_marker(pytest.mark.performance)
            item.add_marker(pytest.mark.slow)
