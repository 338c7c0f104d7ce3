#!/usr/bin/env python3
"""
Example: Batched Matrix Products with Broadcasting

This example demonstrates how MatMul broadcasts batch dimensions, which
execution strategy each shape pair selects, and the transpose attributes.
"""

import numpy as np
import time
import py_gpu_matmul

def basic_usage():
    """Basic usage example with float32 matrices."""
    print("=== Basic Usage: matmul ===")

    m, k, n = 100, 80, 120
    a = np.random.randn(m, k).astype(np.float32)
    b = np.random.randn(k, n).astype(np.float32)

    print(f"Matrix A: {a.shape} ({a.dtype})")
    print(f"Matrix B: {b.shape} ({b.dtype})")

    start_time = time.time()
    result = py_gpu_matmul.matmul(a, b)
    op_time = time.time() - start_time

    result_numpy = np.matmul(a, b)
    max_error = np.max(np.abs(result - result_numpy))

    print(f"Result shape: {result.shape}")
    print(f"Max error vs NumPy: {max_error:.2e}")
    print(f"Time: {op_time*1000:.2f} ms")
    print()

def broadcasting_strategies():
    """Show the strategy picked for each shape pair."""
    print("=== Broadcasting and Strategies ===")

    shape_pairs = [
        ((3, 4), (4, 2)),
        ((2, 3, 4), (2, 4, 2)),
        ((1, 3, 4), (5, 4, 2)),
        ((5, 3, 4), (4, 2)),
        ((2, 1, 3, 4), (1, 3, 4, 2)),
        ((3, 4), (5, 4, 2)),
        ((4,), (4, 2)),
    ]

    op = py_gpu_matmul.MatMul(np.float64)
    for left_shape, right_shape in shape_pairs:
        plan = py_gpu_matmul.plan_contraction(left_shape, right_shape)
        strategy = py_gpu_matmul.select_strategy(plan)

        a = np.random.randn(*left_shape)
        b = np.random.randn(*right_shape)
        result = op(a, b)
        ok = np.allclose(result, np.matmul(a, b))

        print(f"  {str(left_shape):14s} @ {str(right_shape):14s} -> {str(result.shape):12s} "
              f"{strategy}  matches NumPy: {ok}")
    print()

def transposed_operands():
    """Transpose attributes as read from a graph node."""
    print("=== Transposed Operands ===")

    q = np.random.randn(2, 4, 16, 8).astype(np.float32)
    k = np.random.randn(2, 4, 16, 8).astype(np.float32)

    op = py_gpu_matmul.MatMul.from_attributes({"alpha": 1.0 / np.sqrt(8), "transB": 1}, np.float32)
    scores = op(q, k)
    reference = np.matmul(q, np.swapaxes(k, -1, -2)) / np.sqrt(8)

    print(f"Q: {q.shape}, K: {k.shape}, scores: {scores.shape}")
    print(f"Max error vs NumPy: {np.max(np.abs(scores - reference)):.2e}")
    print()

def different_data_types():
    """Example with different data types."""
    print("=== Different Data Types ===")

    for dtype in [np.float16, np.float32, np.float64]:
        a = np.random.randn(4, 32, 24).astype(dtype)
        b = np.random.randn(24, 40).astype(dtype)

        result = py_gpu_matmul.matmul(a, b)
        reference = np.matmul(a.astype(np.float64), b.astype(np.float64))

        max_error = np.max(np.abs(result - reference))
        rel_error = max_error / np.max(np.abs(reference)) if np.max(np.abs(reference)) > 0 else 0
        print(f"  {dtype.__name__}: max error {max_error:.2e}, relative error {rel_error:.2e}")
    print()

def main():
    """Run all examples."""
    print("Batched Matrix Product Examples")
    print("=" * 50)

    py_gpu_matmul.configure_logging()

    try:
        basic_usage()
        broadcasting_strategies()
        transposed_operands()
        different_data_types()

        print("✅ All examples completed successfully!")

    except Exception as e:
        print(f"❌ Error: {e}")
        return 1

    return 0

if __name__ == "__main__":
    exit(main())
