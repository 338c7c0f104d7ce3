# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: py_gpu_matmul/config.py

"""
Operator attributes and logging setup for py-gpu-matmul
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class MatMulAttributes:
    alpha: float = 1.0
    trans_a: bool = False
    trans_b: bool = False

    @classmethod
    def from_dict(cls, attributes: Optional[Mapping[str, Any]] = None) -> 'MatMulAttributes':
        """Read ``alpha``, ``transA`` and ``transB`` node attributes, with defaults.

        Args:
            attributes: Mapping of attribute names to values; unknown keys are ignored

        Returns:
            MatMulAttributes with alpha as float and the transpose flags as bools
        """
        attributes = attributes or {}
        return cls(
            alpha=float(attributes.get("alpha", 1.0)),
            trans_a=int(attributes.get("transA", 0)) != 0,
            trans_b=int(attributes.get("transB", 0)) != 0,
        )


def configure_logging(verbose: bool = False) -> None:
    """Send py-gpu-matmul log records to stderr; DEBUG when verbose."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


__all__ = ['MatMulAttributes', 'configure_logging']
