[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "schemashift"
version = "4.0.0"
description = "Run versioned schema migrations up and down against databases"
requires-python = ">=3.10"
dependencies = []
keywords = ["migrations", "database", "schema", "sqlite", "cli"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
schemashift = "schemashift.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["schemashift"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
