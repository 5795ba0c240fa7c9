[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "delphinn"
version = "0.1.0"
description = "Additive secret sharing over fixed-point numbers, a ReLU boolean circuit and benchmark network builders for two-party private neural-network inference"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "secure computation",
    "secret sharing",
    "boolean circuits",
    "fixed point",
    "private inference",
    "neural networks",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["delphinn"]

[tool.hatch.build.targets.sdist]
include = [
    "delphinn",
    "tests",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
