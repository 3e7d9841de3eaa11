[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ofsim"
version = "0.1.0"
description = "OpenFlow controller applications, LLDP routing, HyperFlow synchronisation and host traffic models for discrete-event network simulation"
requires-python = ">=3.10"
dependencies = []
keywords = ["openflow", "sdn", "lldp", "hyperflow", "simulation", "controller", "routing"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ofsim"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
