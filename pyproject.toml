[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "stepagg"
version = "0.1.0"
description = "Step-batched aggregation operators for time-series query evaluation: sum, avg, quantile, topk/bottomk, count_values, result sorting and query analysis trees."
requires-python = ">=3.10"
dependencies = []
keywords = ["time-series", "aggregation", "query-engine", "promql", "metrics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Information Analysis",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["stepagg"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
