[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dynext"
version = "0.1.0"
description = "Building blocks for dynamizing static indexes: a mutable insertion buffer, levels of shards, tombstone-cancelling merges and reconstruction planning"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "database",
    "index",
    "lsm",
    "dynamization",
    "bentley-saxe",
    "vp-tree",
    "nearest-neighbour",
    "bloom-filter",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["dynext"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
