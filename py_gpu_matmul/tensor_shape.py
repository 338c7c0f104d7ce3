# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/tensor_shape.py

"""
Immutable tensor shape with the size helpers used by the contraction planner.
"""

from typing import Iterable, Tuple

from .errors import InvalidShapeError


class TensorShape:
    """Ordered sequence of non-negative dimension sizes."""

    __slots__ = ('_dims',)

    def __init__(self, dims: Iterable[int] = ()):
        values = tuple(int(d) for d in dims)
        for d in values:
            if d < 0:
                raise InvalidShapeError(f"Negative dimension in shape {values}")
        object.__setattr__(self, '_dims', values)

    def __setattr__(self, name, value):
        raise AttributeError("TensorShape is immutable")

    @property
    def dims(self) -> Tuple[int, ...]:
        return self._dims

    def num_dimensions(self) -> int:
        return len(self._dims)

    def size_to_dimension(self, dimension: int) -> int:
        """Product of the dimensions before ``dimension``."""
        self._check_dimension(dimension)
        size = 1
        for d in self._dims[:dimension]:
            size *= d
        return size

    def size_from_dimension(self, dimension: int) -> int:
        """Product of the dimensions from ``dimension`` to the end."""
        self._check_dimension(dimension)
        size = 1
        for d in self._dims[dimension:]:
            size *= d
        return size

    def size(self) -> int:
        return self.size_from_dimension(0)

    def slice(self, start: int, end=None) -> 'TensorShape':
        return TensorShape(self._dims[start:end])

    def _check_dimension(self, dimension: int) -> None:
        if dimension < 0 or dimension > len(self._dims):
            raise IndexError(f"Dimension {dimension} out of range for shape {self._dims}")

    def __len__(self):
        return len(self._dims)

    def __iter__(self):
        return iter(self._dims)

    def __getitem__(self, index):
        return self._dims[index]

    def __eq__(self, other):
        if isinstance(other, TensorShape):
            return self._dims == other._dims
        if isinstance(other, tuple):
            return self._dims == other
        return NotImplemented

    def __hash__(self):
        return hash(self._dims)

    def __repr__(self):
        return f"TensorShape({list(self._dims)})"


def as_shape(shape) -> TensorShape:
    if isinstance(shape, TensorShape):
        return shape
    return TensorShape(shape)


__all__ = ['TensorShape', 'as_shape']
