# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Setup configuration for numpkg, a package manager for numerical computing environments
"""

from setuptools import setup, find_packages

setup(
    name="numpkg",
    version="1.0.0",
    description="Install, load and manage packages of a numerical computing runtime",
    author="Jason Cafarelli",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0",
        "httpx>=0.24",
        "PyYAML>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "numpkg=numpkg.cli:main",
        ],
    },
)
