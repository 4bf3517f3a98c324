"""
Setup configuration for MANIFEST_ENGINE package.
"""

from pathlib import Path

from setuptools import find_packages, setup

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")

setup(
    name="manifest-engine",
    version="0.1.0",
    description="Versioned application manifests and room settings validation on MongoDB",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "motor>=3.0.0",
        "pymongo>=4.0.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "jsonschema>=4.0.0",
        "click>=8.0.0",
    ],
    extras_require={
        # Installs the enforcer library only; callers build the enforcer and
        # hand it to CasbinAuthorizationProvider.
        "casbin": ["casbin>=1.0.0"],
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
        "all": [
            "casbin>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "manifest-engine=manifest_engine.cli.main:cli",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    keywords="mongodb manifest semver versioning settings validation",
    include_package_data=True,
)
