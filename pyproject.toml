[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nachtools"
version = "0.1.0"
description = "MIPS COFF/NOFF tools, a disassembler, a small MIPS interpreter, a directory table and teaching stacks"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "mips",
    "coff",
    "noff",
    "disassembler",
    "interpreter",
    "emulator",
    "operating-systems",
    "teaching",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Topic :: Software Development :: Disassemblers",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
nachtools-stacks = "nachtools.stacks:main"
nachtools-boundedstack = "nachtools.boundedstack:main"
nachtools-disasm = "nachtools.disassembler:main"
nachtools-coff2noff = "nachtools.coff2noff:main"
nachtools-coff2flat = "nachtools.coff2flat:main"
nachtools-run = "nachtools.interpreter:main"

[tool.hatch.build.targets.wheel]
packages = ["nachtools"]

[tool.hatch.build.targets.sdist]
include = ["nachtools", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
