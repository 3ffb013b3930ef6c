"""
PeerFlash - decentralized-identity login
Ed25519 did:key challenge-response authentication
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="peerflash",
    version="0.1.0",
    author="PeerFlash",
    description="Decentralized-identity challenge-response login",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
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
        "Topic :: Internet :: WWW/HTTP :: Session",
    ],
    python_requires=">=3.10",
    install_requires=[
        "cryptography>=41.0.0",
        "fastapi>=0.109.0",
        "uvicorn>=0.25.0",
        "pydantic>=2.0.0",
        "PyJWT>=2.8.0",
        "httpx>=0.26.0",
        "click>=8.0.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "peerflash=peerflash.cli:main",
        ],
    },
)
