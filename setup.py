from setuptools import setup, find_packages


setup(
    name="tarpress",
    version="0.1",
    packages=find_packages(include=["tarpress", "tarpress.*"]),
    description="Repackage ZIP archives as deduplicated, checksummed, compressed tape-archives.",
    author="vercingetorx",
    python_requires=">=3.8",
    install_requires=[
        "pycryptodomex>=3.23.0",
        "brotli>=1.1.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "tarpress=tarpress.cli:main",
        ]
    },
)
