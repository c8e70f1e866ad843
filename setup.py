"""
Setup configuration for replication_engine package
"""
from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
README_PATH = Path(__file__).parent / "README.md"
long_description = README_PATH.read_text(encoding="utf-8") if README_PATH.exists() else ""

setup(
    name="replication_engine",
    version="1.0.0",
    description="Remove a file from a codebase snapshot and regenerate it with LLMs",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # Package configuration
    packages=find_packages(include=["replication_engine", "replication_engine.*"]),
    python_requires=">=3.8",

    # Dependencies
    install_requires=[
        "httpx>=0.27.0",
    ],

    # Optional dependencies
    extras_require={
        "openai": ["openai>=1.40.0"],
        "anthropic": ["anthropic>=0.36.0"],
        "gemini": ["google-generativeai>=0.7.0"],
        "all": [
            "openai>=1.40.0",
            "anthropic>=0.36.0",
            "google-generativeai>=0.7.0"
        ],
        "test": [
            "pytest>=7.0.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },

    # CLI entry points
    entry_points={
        "console_scripts": [
            "replicate=replication_engine.cli:main",
        ],
    },

    # Package metadata
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Code Generators",
    ],

    keywords=[
        "llm", "code-generation", "codebase", "snapshot", "evaluation",
        "developer-tools"
    ],

    zip_safe=False,
)
