[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lidarkit"
version = "1.2.5"
description = "Host-side toolkit for lidar sensors: configuration parsing and checks, packet decoding, log directory upkeep, firmware image handling and upgrade state machine"
requires-python = ">=3.10"
dependencies = []
keywords = ["lidar", "point cloud", "firmware", "upgrade", "sensor", "configuration"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Instrument Drivers",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["lidarkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
