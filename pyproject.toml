[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "parca"
version = "0.1.0"
description = "Continuous profiling building blocks: scrape configuration, a profile metastore, debug information buckets and debuginfod clients."
requires-python = ">=3.10"
keywords = [
    "profiling",
    "continuous-profiling",
    "pprof",
    "debuginfo",
    "debuginfod",
    "metastore",
    "xxhash",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: Software Development :: Debuggers",
]
dependencies = [
    "pyyaml",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["parca"]

[tool.hatch.build.targets.sdist]
include = [
    "parca",
    "tests",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
