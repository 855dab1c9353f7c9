[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rmqclient"
version = "0.1.0"
description = "Remoting command codecs, request headers and client data models for a message-queue broker"
requires-python = ">=3.10"
dependencies = []
keywords = ["message queue", "remoting", "codec", "broker", "name server", "heartbeat"]
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
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rmqclient"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
