[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pilotkit"
version = "0.1.0"
description = "Filesystem helpers, table and string utilities, and TCP/TLS client sockets with whole-call deadlines"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "sockets", "tls", "utilities", "scripting", "deadline"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Topic :: System :: Filesystems",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pilotkit"]

[tool.pytest.ini_options]
addopts = "-ra"
