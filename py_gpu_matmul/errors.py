# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/errors.py

"""
Error taxonomy for py-gpu-matmul

Input validation problems are raised as ValueError subclasses, failures reported
by the device collaborators as RuntimeError subclasses. Nothing is retried.
"""

from typing import Optional


class MatMulError(Exception):
    """Base class for all py-gpu-matmul errors."""


class InvalidArgumentError(MatMulError, ValueError):
    """Unsupported dtype, dtype mismatch or otherwise unusable argument."""


class InvalidShapeError(MatMulError, ValueError):
    """Malformed operand ranks or mismatched reduction dimension."""


class BroadcastError(MatMulError, ValueError):
    """Batch dimensions that cannot be broadcast together."""


class SparsityValidationError(MatMulError, ValueError):
    """A constant weight does not follow the 2:4 structured-sparsity pattern."""


class UnsupportedSparseBatchShapeError(MatMulError, RuntimeError):
    """The sparse path cannot express the requested batch layout."""


class BackendError(MatMulError, RuntimeError):
    """A device executor or sparse backend call returned a failure status."""

    def __init__(self, status, call: str, message: Optional[str] = None):
        self.status = status
        self.call = call
        if message is None:
            message = f"{call} failed with status {_status_name(status)}"
        super().__init__(message)


def _status_name(status) -> str:
    name = getattr(status, "name", None)
    return f"{name} ({int(status)})" if name else str(status)


def check_status(status, call: str) -> None:
    """Raise BackendError unless ``status`` is a success code (0)."""
    if int(status) != 0:
        raise BackendError(status, call)


__all__ = [
    'MatMulError',
    'InvalidArgumentError',
    'InvalidShapeError',
    'BroadcastError',
    'SparsityValidationError',
    'UnsupportedSparseBatchShapeError',
    'BackendError',
    'check_status',
]
