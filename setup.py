"""
Setup script for chain_indexer.
"""
import pathlib

from setuptools import find_packages, setup


def read_requirements(name):
    with pathlib.Path(__file__).parent.joinpath(name).open() as requirements_txt:
        return [
            line.split("#", 1)[0].strip()
            for line in requirements_txt
            if line.split("#", 1)[0].strip()
        ]


install_requires = read_requirements("requirements.txt")
dev_requires = read_requirements("dev-requirements.txt")

setup(
    name="chain_indexer",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={
        "": "src",
    },
    include_package_data=True,
    zip_safe=False,
    install_requires=install_requires,
    extras_require={
        "test": dev_requires,
    },
    entry_points={
        "console_scripts": [
            "chain-indexer=chain_indexer.cli:main",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
