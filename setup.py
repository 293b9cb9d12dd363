"""
CTP Protocol Setup
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read() if f else ""

setup(
    name="ctp-protocol",
    version="1.0.0",
    author="CTP Protocol Team",
    description="Confidential Transfer Protocol: RPA one-time keys, Sigma64 range proofs and covenant spends",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"ctp": ["data/*.json"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "pycryptodome>=3.19.0",
        "ecdsa>=0.18.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-timeout>=2.2.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ctp=ctp.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Security :: Cryptography",
        "Topic :: Office/Business :: Financial",
    ],
    keywords="bitcoin-cash cashtokens confidential-transactions pedersen sigma-protocol stealth-address",
)
