"""
Setup script for neural-learnsync.

learnsync is the learning-progress core of the Neural productivity app.
It serves three roles:

1. Adaptive Difficulty - rolling accuracy and difficulty recommendations per topic
2. Dual-Mode Storage - device-local guest store and remote authoritative store
3. Offline Sync - retrying write queue and one-time guest data migration

The 'learnsync' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="neural-learnsync",
    version="0.3.0",
    description="Adaptive learning-progress engine with offline sync",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Neural",
    packages=find_packages(include=["learnsync", "learnsync.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "learnsync=learnsync.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning adaptive-difficulty offline-sync education",
)
