"""Packaging for the PostgreSQL environment provisioner."""

from pathlib import Path

from setuptools import find_packages, setup

HERE = Path(__file__).parent
README = (
    (HERE / "README.md").read_text(encoding="utf8")
    if (HERE / "README.md").exists()
    else ""
)


setup(
    name="pg-env-provisioner",
    version="1.0.0",
    description="Provision per-environment PostgreSQL databases, roles and schemas for services",
    long_description=README,
    long_description_content_type="text/markdown",
    license="MIT",
    python_requires=">=3.9",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={
        "pg_provisioner.resources": ["*.yaml"],
        "pg_provisioner.resources.templates": ["*.sql.template"],
    },
    include_package_data=True,
    install_requires=[
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "psycopg2-binary>=2.9",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
        "docs": [
            "sphinx>=7.0",
            "sphinx-rtd-theme>=2.0",
            "sphinx-autodoc-typehints>=1.25",
        ],
    },
    entry_points={
        "console_scripts": [
            "provision=pg_provisioner.cli:run",
            "provision-dependencies=pg_provisioner.cli:run_dependencies",
        ],
    },
    zip_safe=False,
)
