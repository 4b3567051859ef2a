[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rpcplug"
version = "0.1.0"
description = "Server-side plugins and utilities for RPC services: service registries, rate limiting, access control, metrics and request contexts"
requires-python = ">=3.10"
dependencies = [
    "psutil",
]
keywords = ["rpc", "plugins", "service-registry", "rate-limiting", "metrics", "consul", "zookeeper", "redis"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["rpcplug"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
