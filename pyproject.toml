[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "anycdc"
version = "0.1.0"
description = "Change data capture: turn MySQL binlog and PostgreSQL logical replication changes into upserts on other databases."
requires-python = ">=3.10"
keywords = [
    "cdc",
    "change-data-capture",
    "replication",
    "binlog",
    "logical-replication",
    "pgoutput",
    "mysql",
    "postgresql",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: System :: Archiving :: Mirroring",
]
dependencies = [
    "pyyaml>=6.0",
    "sqlalchemy>=2.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
]

[project.scripts]
anycdc = "anycdc.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["anycdc"]

[tool.hatch.build.targets.sdist]
include = ["anycdc", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
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
ignore_missing_imports = true
