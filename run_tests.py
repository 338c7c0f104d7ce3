#!/usr/bin/env python3
"""
Run the py-gpu-matmul test suite, optionally restricted to one component or marker.
"""

import argparse
import os
import subprocess
import sys

COMPONENT_MODULES = {
    'planner': ['tests/test_tensor_shape.py', 'tests/test_batch_planner.py', 'tests/test_strategy.py'],
    'device': ['tests/test_device.py', 'tests/test_dispatch.py'],
    'operator': ['tests/test_matmul_ops.py'],
    'errors': ['tests/test_error_handling.py'],
}

MARKERS = {
    'fast': 'not slow',
    'integration': 'integration',
    'sparse': 'sparse',
}


def build_command(args):
    cmd = [sys.executable, '-m', 'pytest']
    selected = [expr for name, expr in MARKERS.items() if getattr(args, name)]
    if selected:
        cmd.extend(['-m', ' and '.join(f'({expr})' for expr in selected)])
    if args.verbose:
        cmd.append('-v')
    if args.coverage:
        cmd.extend(['--cov=py_gpu_matmul', '--cov-report=term-missing'])

    targets = [module for component, modules in COMPONENT_MODULES.items()
               if getattr(args, component) for module in modules]
    if args.pattern:
        cmd.append(args.pattern)
    else:
        cmd.extend(targets or ['tests/'])
    return cmd


def main():
    parser = argparse.ArgumentParser(description="Run py-gpu-matmul tests")
    parser.add_argument('--fast', action='store_true', help='Skip tests marked slow')
    parser.add_argument('--integration', action='store_true', help='Run only integration tests')
    parser.add_argument('--sparse', action='store_true', help='Run only 2:4 sparse prepack tests')
    for component in COMPONENT_MODULES:
        parser.add_argument(f'--{component}', action='store_true', help=f'Run only {component} tests')
    parser.add_argument('--coverage', action='store_true', help='Report coverage of py_gpu_matmul')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('pattern', nargs='?',
                        help='Test path or node id (e.g., tests/test_strategy.py::TestSelectStrategy)')
    args = parser.parse_args()

    cmd = build_command(args)
    print(f"Command: {' '.join(cmd)}")
    result = subprocess.run(cmd, cwd=os.path.dirname(os.path.abspath(__file__)))
    print("✅ All tests passed!" if result.returncode == 0 else "❌ Some tests failed!")
    return result.returncode


if __name__ == '__main__':
    sys.exit(main())
