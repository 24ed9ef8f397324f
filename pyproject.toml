[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "apibench"
version = "0.1.0"
description = "Building blocks for an HTTP API benchmark: URL handling, non-blocking sockets, CPU sampling and result reporting."
requires-python = ">=3.10"
keywords = ["benchmark", "http", "load-testing", "latency", "throughput"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
    "Topic :: Internet :: WWW/HTTP",
]
dependencies = [
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["apibench"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
