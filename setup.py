from setuptools import setup, find_packages

setup(
    name="treeops",
    version="1.0.0",
    description="Concurrent bulk filesystem operations: enumerate, copy, remove and hash trees",
    author="Ashwin Nair",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "argcomplete",
        "PyYAML",
        "requests",
        "rich",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "treeops = apps.cli:main",
            "treeops-config = common.shared.loader:cli_main",
        ],
    },
)
