"""Setup script for Keystone Indexer"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
this_directory = Path(__file__).parent
long_description = ""
readme_path = this_directory / "README.md"
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")

setup(
    name="keystone-indexer",
    version="0.3.0",
    author="Keystone Contributors",
    author_email="",
    description="RBAC event indexer for Soroban contracts with a queryable audit log",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Database",
        "Topic :: System :: Monitoring",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.11",
    install_requires=[
        "typer>=0.9.0",
        "rich>=13.0.0",
        "httpx>=0.25.0",
        "tenacity>=8.2.0",
    ],
    extras_require={
        "serve": [
            "starlette>=0.36.0",
            "uvicorn>=0.27.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "starlette>=0.36.0",
            "uvicorn>=0.27.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "keystone-indexer=keystone_indexer.cli:app",
        ],
    },
    keywords="soroban stellar rbac indexer audit-log sqlite",
)
