"""
Setup script for mongostream
"""
from pathlib import Path

from setuptools import find_packages, setup


def read_requirements(name: str):
    """Requirement lines from a requirements file, without comments"""
    path = Path(__file__).parent / name
    return [
        line.strip()
        for line in path.read_text().splitlines()
        if line.strip() and not line.startswith("#")
    ]


setup(
    name="mongostream",
    version="0.6.0",
    description="Stream MongoDB collections to another MongoDB deployment",
    long_description=(Path(__file__).parent / "README.md").read_text(),
    long_description_content_type="text/markdown",
    python_requires=">=3.8",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["stream_migrate"],
    install_requires=read_requirements("requirements.txt"),
    extras_require={
        "test": read_requirements("requirements-test.txt"),
    },
    entry_points={
        "console_scripts": [
            "mongostream=mongostream.cli:main",
        ],
    },
)
