[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "conjsse"
version = "0.1.0"
description = "Conjunctive searchable symmetric encryption: ODXT and HDXT schemes with experiment drivers"
requires-python = ">=3.10"
keywords = [
    "searchable encryption",
    "sse",
    "conjunctive search",
    "odxt",
    "hdxt",
    "bloom filter",
    "cryptography",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
    "Topic :: Database",
]
dependencies = [
    "cryptography",
    "pymongo",
    "sqlalchemy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
conjsse-odxt = "conjsse.odxt_cli:main"
conjsse-hdxt-store = "conjsse.hdxt_store:main"

[tool.hatch.build.targets.wheel]
packages = ["conjsse"]

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
