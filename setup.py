"""
Setup script for fvdvm package.
"""

from setuptools import setup, find_packages

setup(
    name="fvdvm",
    version="0.1.0",
    description="Finite volume discrete velocity method solver for the Boltzmann-BGK equation",
    author="Andrey",
    packages=find_packages(include=["fvdvm", "fvdvm.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.20",
        "numba>=0.56",
        "matplotlib>=3.5",
        "scipy>=1.7",
    ],
    extras_require={
        "dev": ["pytest>=7.0", "black", "flake8"],
    },
)
