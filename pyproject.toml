[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "arbfinder"
version = "0.1.0"
description = "Exchange connectivity, rate limiting, portfolio tracking and risk management for cryptocurrency arbitrage trading"
requires-python = ">=3.10"
keywords = ["cryptocurrency", "arbitrage", "trading", "exchange", "risk", "portfolio", "asyncio"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Financial and Insurance Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Office/Business :: Financial :: Investment",
]
dependencies = [
    "websockets",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["arbfinder"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
