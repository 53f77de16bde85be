[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "managed_upgrade"
version = "0.1.0"
description = "Upgrade-configuration model, cluster version helpers, availability checks, Alertmanager silences, event predicates and upgrade metrics for managed cluster upgrades"
requires-python = ">=3.10"
keywords = ["upgrade", "cluster", "operator", "alertmanager", "silences", "metrics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["managed_upgrade"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
