#!/usr/bin/env python3
"""
Setup script for cspadimage - CSPad detector image assembly.
"""

from setuptools import setup, find_packages
import os

# Read the README file for long description
def read_readme():
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    if os.path.exists(readme_path):
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    return "CSPad detector image assembly"

setup(
    name="cspadimage",
    version="0.1.0",
    description="CSPad detector image assembly from raw quad data",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    author="LCLS Data Analysis Team",
    author_email="",
    packages=find_packages(exclude=["tests", "examples"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.25.0",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov>=2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "cspadimage=cspadimage.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Physics",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    keywords="lcls xray physics detector cspad psana geometry",
    include_package_data=True,
    zip_safe=False,
)
