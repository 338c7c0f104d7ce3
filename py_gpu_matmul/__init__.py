# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/__init__.py

"""
py-gpu-matmul: batched matrix products with broadcasting and 2:4 sparse weights

This package plans N-dimensional matrix contractions with NumPy-style batch
broadcasting, picks the cheapest GEMM call shape (single, strided-batched or
indexed-batched) and dispatches it to a device executor. A constant right-hand
weight can be prepacked once into the 2:4 structured-sparse format.
"""

from .errors import *
from .dtypes import *
from .tensor_shape import *
from .broadcast import *
from .batch_planner import *
from .strategy import *
from .device import *
from .sparse_backend import *
from .prepack import *
from .dispatch import *
from .config import *
from .matmul_ops import *

__version__ = "0.1.0"
