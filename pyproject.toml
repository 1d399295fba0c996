[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "netdisco"
version = "0.1.0"
description = "Network discovery graph tools: router config loading, graph trimming, template rendering and TCP fingerprint matching"
requires-python = ">=3.10"
keywords = [
    "network",
    "discovery",
    "topology",
    "graph",
    "router",
    "tcp-fingerprint",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]
dependencies = [
    "requests",
    "jinja2",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
netdisco-routerconfig = "netdisco.routerconfig:main"
netdisco-minemiter = "netdisco.minemiter:main"
netdisco-trim = "netdisco.trim:main"

[tool.hatch.build.targets.wheel]
packages = ["netdisco"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
