#!/usr/bin/env python3
"""
Performance benchmark suite for py-gpu-matmul package
Compares the operator against np.matmul for each batch strategy and for 2:4 sparse weights
"""

import numpy as np
import time
import sys
from typing import Dict, List, Callable

try:
    import py_gpu_matmul
    print("✅ py-gpu-matmul imported successfully")
except ImportError as e:
    print(f"❌ Failed to import py-gpu-matmul: {e}")
    sys.exit(1)

def time_function(func: Callable, *args, warmup_runs: int = 2, timing_runs: int = 5) -> float:
    """Time a function with warmup and multiple runs"""
    # Warmup runs
    for _ in range(warmup_runs):
        func(*args)

    # Timing runs
    times = []
    for _ in range(timing_runs):
        start = time.time()
        result = func(*args)
        times.append(time.time() - start)

    return np.median(times), result

def strategy_name(left_shape, right_shape) -> str:
    plan = py_gpu_matmul.plan_contraction(left_shape, right_shape)
    return type(py_gpu_matmul.select_strategy(plan)).__name__

def benchmark_batch_strategies():
    """Benchmark each batch strategy across different shapes"""
    print("\n📊 BATCH STRATEGY PERFORMANCE BENCHMARK")
    print("=" * 60)

    test_shapes = [
        ((256, 256), (256, 256)),             # Single
        ((100, 50), (50, 80)),                # Single, rectangular
        ((32, 64, 64), (32, 64, 64)),         # StridedUniform
        ((32, 64, 64), (64, 64)),             # StridedUniform, shared right
        ((1, 64, 64), (32, 64, 64)),          # StridedUniform, shared left
        ((8, 1, 64, 64), (1, 4, 64, 64)),     # FullyIndexed
        ((64, 64), (32, 64, 64)),             # FullyIndexed, 2-D left
    ]

    results = []

    for left_shape, right_shape in test_shapes:
        strategy = strategy_name(left_shape, right_shape)
        print(f"\n  Testing {left_shape} @ {right_shape} ({strategy}):")

        a = np.random.randn(*left_shape).astype(np.float32)
        b = np.random.randn(*right_shape).astype(np.float32)
        op = py_gpu_matmul.MatMul(np.float32)

        numpy_time, numpy_result = time_function(np.matmul, a, b)
        op_time, op_result = time_function(op.compute, a, b)

        ratio = numpy_time / op_time if op_time > 0 else 0
        error = np.max(np.abs(numpy_result - op_result))

        print(f"    NumPy matmul:    {numpy_time*1000:8.2f}ms")
        print(f"    MatMul:          {op_time*1000:8.2f}ms (ratio: {ratio:5.2f}x, error: {error:.2e})")

        results.append({
            'operation': 'batch_strategy',
            'strategy': strategy,
            'size': f"{left_shape}x{right_shape}",
            'numpy_time': numpy_time,
            'op_time': op_time,
            'ratio': ratio,
            'error': error
        })

    return results

def make_2of4_weight(k, n):
    """Random K x N weight keeping two of every four entries along K"""
    weight = np.random.randn(k, n).astype(np.float32)
    scores = np.random.rand(k // 4, 4, n)
    keep = np.argsort(np.argsort(scores, axis=1), axis=1) < 2
    return weight * keep.reshape(k, n)

def benchmark_sparse_prepack():
    """Benchmark a prepacked 2:4 weight against the dense path"""
    print("\n📊 2:4 SPARSE PREPACK PERFORMANCE BENCHMARK")
    print("=" * 60)

    test_configs = [
        (64, 256, 256),     # batch rows, K, N
        (256, 512, 256),
        (512, 1024, 512),
    ]

    results = []

    for m, k, n in test_configs:
        print(f"\n  Testing ({m}x{k}) @ 2:4 ({k}x{n}):")

        x = np.random.randn(m, k).astype(np.float32)
        weight = make_2of4_weight(k, n)

        dense_op = py_gpu_matmul.MatMul(np.float32)
        sparse_op = py_gpu_matmul.MatMul(np.float32)
        start = time.time()
        sparse_op.prepack(weight, py_gpu_matmul.PrepackParam("W", input_idx=1, is_2x4_format=True))
        prepack_time = time.time() - start

        dense_time, dense_result = time_function(dense_op.compute, x, weight)
        sparse_time, sparse_result = time_function(sparse_op.compute, x)

        ratio = dense_time / sparse_time if sparse_time > 0 else 0
        error = np.max(np.abs(dense_result - sparse_result))

        print(f"    Prepack (once):  {prepack_time*1000:8.2f}ms")
        print(f"    Dense:           {dense_time*1000:8.2f}ms")
        print(f"    Sparse:          {sparse_time*1000:8.2f}ms (ratio: {ratio:5.2f}x, error: {error:.2e})")

        results.append({
            'operation': 'sparse_prepack',
            'size': f"{m}x{k}x{n}",
            'prepack_time': prepack_time,
            'dense_time': dense_time,
            'sparse_time': sparse_time,
            'ratio': ratio,
            'error': error
        })

    return results

def summarize_results(all_results: List[Dict]):
    """Summarize benchmark results"""
    print("\n🎯 PERFORMANCE BENCHMARK SUMMARY")
    print("=" * 60)

    strategy_results = [r for r in all_results if r.get('operation') == 'batch_strategy']
    if strategy_results:
        print(f"Batch Strategies:")
        for strategy in sorted({r['strategy'] for r in strategy_results}):
            ratios = [r['ratio'] for r in strategy_results if r['strategy'] == strategy]
            print(f"  {strategy:16s} average ratio vs NumPy: {np.mean(ratios):.2f}x")

    sparse_results = [r for r in all_results if r.get('operation') == 'sparse_prepack']
    if sparse_results:
        avg_ratio = np.mean([r['ratio'] for r in sparse_results])
        max_error = np.max([r['error'] for r in sparse_results])
        print(f"Sparse Prepack:")
        print(f"  Average dense/sparse ratio: {avg_ratio:.2f}x")
        print(f"  Max error vs dense: {max_error:.2e}")

def main():
    """Run performance benchmark suite"""
    print("⚡ PY-GPU-MATMUL PERFORMANCE BENCHMARK SUITE")
    print("=" * 60)
    print("Comparing MatMul against np.matmul across batch strategies")
    print("(The reference executor runs on the host; timings show dispatch overhead)")

    all_results = []

    # Run benchmarks
    benchmark_functions = [
        benchmark_batch_strategies,
        benchmark_sparse_prepack,
    ]

    for benchmark_func in benchmark_functions:
        try:
            results = benchmark_func()
            all_results.extend(results)
        except Exception as e:
            print(f"❌ Error in {benchmark_func.__name__}: {e}")

    # Summarize results
    summarize_results(all_results)

    print(f"\n🏁 BENCHMARK COMPLETE")
    print("=" * 60)

    return 0

if __name__ == "__main__":
    sys.exit(main())
