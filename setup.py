"""
imgproof Build Configuration

Proof lifecycle and lineage reconstruction for transformed images.

Usage:
    pip install -e .            # Library + API
    pip install -e ".[test]"    # With test tooling
"""

from setuptools import setup, find_packages

setup(
    name="imgproof",
    version="0.1.0",
    description="Provenance proofs and lineage for transformed images",
    packages=find_packages(include=["imgproof", "imgproof.*"]),
    package_data={"imgproof": ["data/*.json"]},
    install_requires=[
        "aiosqlite>=0.19",
        "fastapi>=0.110",
        "httpx>=0.27",
        "loguru>=0.7",
        "Pillow>=10.0",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    python_requires=">=3.10",
)
