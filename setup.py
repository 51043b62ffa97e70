#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Setup script for portgraph

Port dependency resolution and action planning engine.
"""

from pathlib import Path

from setuptools import find_packages, setup

VERSION = "1.0.0"

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")
else:
    long_description = "Port dependency resolution and action planning engine"

setup(
    name="portgraph",
    version=VERSION,
    description="Port dependency resolution and action planning engine",
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires=">=3.8",
    packages=find_packages(include=["portgraph", "portgraph.*"]),
    install_requires=[
        "pydantic>=2.0",
        "prometheus_client>=0.17",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
)
