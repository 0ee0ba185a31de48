"""Packaging for StudyFocus.

Install for development:
    pip install -e ".[test]"
"""

from setuptools import find_packages, setup

setup(
    name="StudyFocus",
    version="0.1.0",
    description="Focus timer engine shared between several views of one study session",
    packages=find_packages(exclude=["tests"]),
    python_requires=">=3.10",
    install_requires=[
        "PyQt6>=6.4",
        "SQLAlchemy>=2.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": ["studyfocus=studyfocus.__main__:main"],
    },
)
