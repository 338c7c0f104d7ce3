# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/dtypes.py

"""
Numeric type descriptors for py-gpu-matmul

A single generic implementation serves every element type; the descriptor carries
what the backends need to know about it (element size, backend enum code and the
precision used for accumulation).
"""

from dataclasses import dataclass

import numpy as np

from .errors import InvalidArgumentError


@dataclass(frozen=True)
class NumericType:
    name: str
    dtype: np.dtype
    itemsize: int
    backend_code: int
    accumulate_dtype: np.dtype


FLOAT32 = NumericType('float32', np.dtype(np.float32), 4, 0, np.dtype(np.float32))
FLOAT64 = NumericType('float64', np.dtype(np.float64), 8, 1, np.dtype(np.float64))
FLOAT16 = NumericType('float16', np.dtype(np.float16), 2, 2, np.dtype(np.float32))

# Type mapping for backend dispatch
_TYPE_DISPATCH_MAP = {
    np.dtype(np.float16): FLOAT16,
    np.dtype(np.float32): FLOAT32,
    np.dtype(np.float64): FLOAT64,
}


def numeric_type_for(dtype, operation_name: str = "matmul") -> NumericType:
    """Look up the descriptor for ``dtype``.

    Raises:
        InvalidArgumentError: If the dtype has no registered descriptor
    """
    try:
        key = np.dtype(dtype)
    except TypeError:
        raise InvalidArgumentError(f"{operation_name}: Unsupported dtype {dtype!r}")
    if key not in _TYPE_DISPATCH_MAP:
        supported = ", ".join(t.name for t in _TYPE_DISPATCH_MAP.values())
        raise InvalidArgumentError(f"{operation_name}: Unsupported dtype {key}. Supported: {supported}")
    return _TYPE_DISPATCH_MAP[key]


def supported_dtypes():
    """Return the registered NumPy dtypes."""
    return list(_TYPE_DISPATCH_MAP.keys())


__all__ = [
    'NumericType',
    'FLOAT16',
    'FLOAT32',
    'FLOAT64',
    'numeric_type_for',
    'supported_dtypes',
]
