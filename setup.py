"""Grow EBS volumes, partitions and filesystems running out of space."""

from codecs import open
from os import path

from setuptools import setup

here = path.abspath(path.dirname(__file__))

# Get the long description from the README file
with open(path.join(here, "README.rst"), encoding="utf-8") as f:
    long_description = f.read()

test_deps = [
    "responses",
    "pytest>=3",
    "pytest-mock",
    "pytest-structlog",
    "pytest-cov",
]

setup(
    name="ebs-autoresize",
    version="1.0",
    description=__doc__,
    long_description=long_description,
    license="ZPL",
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Environment :: Console",
        "License :: OSI Approved :: Zope Public License",
        "Programming Language :: Python :: 3.10",
        "Topic :: System :: Systems Administration",
    ],
    packages=[
        "ebsresize",
        "ebsresize.util",
    ],
    python_requires=">=3.10",
    install_requires=[
        "boto3",
        "botocore",
        "colorama",
        "psutil",
        "requests",
        "rich",
        "stamina",
        "structlog",
        "typer",
    ],
    zip_safe=False,
    tests_require=test_deps,
    extras_require={"test": test_deps},
    entry_points={
        "console_scripts": [
            "ebs-autoresize=ebsresize.cli:app",
        ],
    },
)
