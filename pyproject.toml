[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "landing_planner"
version = "0.1.0"
description = "Safe landing site detection, landing waypoint generation and jerk-limited trajectory simulation for multicopters"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "drone",
    "multicopter",
    "landing",
    "point cloud",
    "height grid",
    "trajectory",
    "path planning",
]
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
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["landing_planner"]

[tool.hatch.build.targets.sdist]
include = [
    "landing_planner",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
