[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nodestats"
version = "0.1.0"
description = "Collectors that turn Linux /proc and /sys data into Prometheus-style metric samples"
requires-python = ">=3.10"
dependencies = []
keywords = ["monitoring", "metrics", "prometheus", "procfs", "sysfs", "linux"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["nodestats"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
