from setuptools import find_packages, setup

setup(
    name="planetree",
    version="0.1.0",
    description="Phase-scheduled decision tree growth over partitioned data",
    packages=find_packages(include=["planetree", "planetree.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "torch",
        "pandas",
        "scikit-learn",
        "typer",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["planetree=planetree.cli:app"]},
)
