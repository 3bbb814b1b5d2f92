[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "agentstore"
version = "0.1.0"
description = "Append-only event store for AI agent sessions with replay, snapshots and materialized state"
requires-python = ">=3.10"
dependencies = []
keywords = ["event-sourcing", "agents", "llm", "event-store", "replay", "snapshots"]
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
    "Topic :: Database",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
agentstore-demo = "agentstore.demo:main"

[tool.hatch.build.targets.wheel]
packages = ["agentstore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
