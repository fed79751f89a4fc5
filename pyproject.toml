[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "goload"
version = "0.1.0"
description = "Configuration, logging, Redis cache, SQL data access, bcrypt hashing and RS512 token services for a download manager backend."
requires-python = ">=3.10"
keywords = ["authentication", "jwt", "bcrypt", "rsa", "redis", "mysql", "sqlalchemy", "tokens"]
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
    "Topic :: Security",
    "Topic :: Database",
]
dependencies = [
    "pyyaml>=6.0",
    "bcrypt>=4.0",
    "pyjwt>=2.8",
    "cryptography>=41.0",
    "redis>=5.0",
    "sqlalchemy>=2.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
]

[tool.hatch.build.targets.wheel]
packages = ["goload"]

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
ignore_missing_imports = true
