# Copyright (c) 2025 Alessandro Baretta
# All rights reserved.

# source path: setup.py

"""
Setup script for py-gpu-matmul Python package
"""

from pathlib import Path

from setuptools import setup, find_packages

# Package metadata
PACKAGE_NAME = "py-gpu-matmul"
VERSION = "0.1.0"
DESCRIPTION = "Batched matrix products with broadcasting and 2:4 structured-sparse weights"
AUTHOR = "Alessandro Baretta"
EMAIL = "alessandro@example.com"

# Get the long description from README
current_dir = Path(__file__).parent
long_description = (current_dir / "README.md").read_text(encoding="utf-8")

setup(
    name=PACKAGE_NAME,
    version=VERSION,
    author=AUTHOR,
    author_email=EMAIL,
    description=DESCRIPTION,
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.20.0",
    ],
    extras_require={
        "test": [
            "pytest>=6.0",
            "pytest-cov",
        ],
        "dev": [
            "pytest>=6.0",
            "pytest-cov",
            "black",
            "isort",
            "mypy",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: Other/Proprietary License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    keywords="gpu blas gemm matmul broadcasting sparse",
    zip_safe=False,
)
