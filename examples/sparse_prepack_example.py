#!/usr/bin/env python3
"""
Example: 2:4 Structured-Sparse Weight Prepack

This example prepacks a constant 2:4 sparse weight once, serves several
inputs from the compressed form, and shows the dense fallback for a weight
that fails validation.
"""

import numpy as np
import py_gpu_matmul

def make_2of4_weight(k, n, dtype=np.float32):
    """Random K x N weight keeping two of every four entries along K."""
    weight = np.random.randn(k, n)
    scores = np.random.rand(k // 4, 4, n)
    keep = np.argsort(np.argsort(scores, axis=1), axis=1) < 2
    return (weight * keep.reshape(k, n)).astype(dtype)

def prepacked_layer():
    """Prepack once, compute many times."""
    print("=== Prepacked Layer ===")

    weight = make_2of4_weight(64, 32)
    layer = py_gpu_matmul.MatMul(np.float32)
    param = py_gpu_matmul.PrepackParam("fc1.weight", input_idx=1, is_2x4_format=True)

    packed = layer.prepack(weight, param)
    info = layer.sparse_info
    print(f"Prepacked: {packed}, flattened {info.k} x {info.n}, "
          f"{info.plan.compressed_size_bytes} compressed bytes")

    for shape in [(8, 64), (64,), (4, 8, 64)]:
        x = np.random.randn(*shape).astype(np.float32)
        result = layer(x)
        error = np.max(np.abs(result - np.matmul(x, weight)))
        print(f"  input {str(shape):12s} -> {str(result.shape):10s} max error {error:.2e}")
    print()

def ineligible_weights():
    """Weights that are not prepacked keep the dense path."""
    print("=== Ineligible Weights ===")

    weight = make_2of4_weight(16, 8)
    layer = py_gpu_matmul.MatMul(np.float32)
    not_flagged = py_gpu_matmul.PrepackParam("W", input_idx=1, is_2x4_format=False)
    print(f"Not flagged as 2:4: prepacked={layer.prepack(weight, not_flagged)}")

    dense_weight = np.random.randn(16, 8).astype(np.float32)
    flagged = py_gpu_matmul.PrepackParam("W", input_idx=1, is_2x4_format=True)
    try:
        layer.prepack(dense_weight, flagged)
    except py_gpu_matmul.SparsityValidationError as e:
        print(f"Validation failed: {e}")

    x = np.random.randn(4, 16).astype(np.float32)
    result = layer(x, dense_weight)
    print(f"Dense fallback max error: {np.max(np.abs(result - x @ dense_weight)):.2e}")
    print()

def main():
    """Run all examples."""
    print("2:4 Sparse Prepack Examples")
    print("=" * 50)

    py_gpu_matmul.configure_logging(verbose=True)

    try:
        prepacked_layer()
        ineligible_weights()

        print("✅ All examples completed successfully!")

    except Exception as e:
        print(f"❌ Error: {e}")
        return 1

    return 0

if __name__ == "__main__":
    exit(main())
