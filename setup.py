"""
Airlane setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="airlane",
    version="1.0.0",
    description="Airlane — Storage engine for personal and team files",
    packages=find_packages(include=["airlane", "airlane.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "airlane=airlane.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "psycopg2-binary>=2.9",
        "pydantic>=2.5",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
)
