"""
RichStore: secondary indices for an append-only block/transaction store

RichStore keeps transaction-by-block, transaction-by-signer and
transaction-by-updated-address indices next to a primary store and serves them
as paginated range queries, from MongoDB or from a bulk-loaded relational
database.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh.readlines() if line.strip() and not line.startswith("#")]

# Get version from the package
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '.'))
from richstore.units.version import get_version, VERSION

setup(
    name="RichStore",
    version=get_version(VERSION),
    description="Secondary reference indices and batched bulk loading for block stores",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=['richstore', 'richstore.*'], exclude=['tests*']),
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.0",
            "hypothesis>=6.0",
            "mongomock>=4.1",
        ],
    },
    entry_points={
        "console_scripts": [
            "richstore=richstore.cli:richstore",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "Intended Audience :: Developers",
        "Topic :: Database",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    keywords="blockchain, explorer, index, bulk load",
)
