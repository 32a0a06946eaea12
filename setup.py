#!/usr/bin/env python3
"""Setup script for WebDAV Sync Client (WDSC)."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="wdsc",
    version="0.1.0",
    description="One-way local to WebDAV sync client",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "webdav4>=0.9.8",
        "httpx>=0.24.0",
        "watchdog>=3.0.0",
        "keyring>=24.0.0",
        "certifi>=2023.7.22",
        "wcmatch>=8.4",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "wdsc=wdsc.cli:main",
            "wdsc-daemon=wdsc.daemon:main",
        ],
    },
)
