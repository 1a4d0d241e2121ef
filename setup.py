# setup.py
from setuptools import setup, find_packages

setup(
    name="parallel-progress",
    version="0.1.0",
    description="Aggregate progress reporting for data-parallel loops",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.8",
    install_requires=[
        "tqdm>=4.60",
        "setproctitle>=1.3",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "parallel-progress-demo=parallel_progress.cli:main",
        ],
    },
)
