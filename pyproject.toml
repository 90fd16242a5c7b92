[build-system]
requires = ["setuptools>=64"]
build-backend = "setuptools.build_meta"

[project]
name = "felisim"
version = "0.1.0"
description = "Instruction-level simulator, disassembler and debugger for a 32-bit MIPS-like processor"
requires-python = ">=3.10"
dependencies = []
keywords = ["simulator", "emulator", "mips", "cpu", "disassembler", "debugger"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Topic :: Software Development :: Debuggers",
    "Topic :: Software Development :: Disassemblers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
felisim = "felisim.cli:main"
felisim-dec2bin = "felisim.dec2bin:main"

[tool.setuptools.packages.find]
include = ["felisim*"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
