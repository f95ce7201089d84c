from setuptools import setup, find_packages
import pathlib

# Detect layout
use_src = pathlib.Path("src/lazymake").exists()
pkg_args = {"package_dir": {"": "src"}, "packages": find_packages(where="src")} if use_src \
           else {"packages": find_packages(where=".", exclude=["tests", "tests.*"])}

setup(
    name="lazy-make",
    version="0.1.0",
    description="Incremental build engine with lazily loaded compiler dependency records",
    python_requires=">=3.9",
    install_requires=[
        "typer>=0.9",
        "PyYAML>=6.0",
        "Jinja2>=3.0",
        "pydantic>=2.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": ["lazymake=lazymake.cli:app"],
    },
    include_package_data=True,
    **pkg_args
)
