#!/usr/bin/env python3
"""
Setup configuration for ytm-stream
Resolve YouTube Music audio streams and relay them locally with seek support
"""

from setuptools import setup, find_packages

# PyPI description comes from the README
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Runtime dependencies
core_requirements = [
    "aiohttp>=3.9.1",
    "click>=8.1.7",
    "rich-click>=1.7.0",
    "pyyaml>=6.0.1",
    "python-dotenv>=1.0.0",
]

setup(
    name="ytm-stream",
    version="0.1.0",
    author="ytm-stream Team",
    description="Resolve YouTube Music audio streams via Innertube and relay them locally with Range support",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Framework :: AsyncIO",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    ],
    python_requires=">=3.10",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
        ],
    },
    entry_points={
        "console_scripts": [
            "ytm-stream=ytm_stream.cli:main",
        ],
    },
    include_package_data=True,
    keywords="youtube music innertube stream proxy range cli",
)
