[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "shardkeep"
version = "0.1.0"
description = "Block metadata, block links, key-block indexes and archive bookkeeping for a blockchain indexer node"
requires-python = ">=3.10"
keywords = ["blockchain", "storage", "archives", "key-value", "indexer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Database",
]
dependencies = [
    "psutil",
    "sortedcontainers",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["shardkeep"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
