#!/usr/bin/env python

from setuptools import setup, find_packages

setup(
    name="sc_killfeed",
    version="0.1.0",
    description="Kill event extraction and correlation engine for Star Citizen Game.log files",
    author="GeNe FRAG",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=True,
    package_data={
        "config": ["profiles/*.json"],
    },
    python_requires=">=3.8",
    install_requires=[
        "requests>=2.25.0",
        "numpy>=1.19.0",
        "pandas>=1.0.0",
        "openpyxl>=3.0.0",
    ],
    extras_require={
        "test": ["pytest>=6.0"],
    },
    entry_points={
        "console_scripts": [
            "sc-killfeed-replay=sc_killfeed.tools.log_replay:main",
        ],
    },
)
