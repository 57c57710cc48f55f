[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xv6fs"
version = "0.1.0"
description = "A small block file system with a buffer cache, redo log, inodes, directories, pipes and file descriptors"
requires-python = ">=3.10"
keywords = ["filesystem", "inode", "journaling", "buffer-cache", "disk-image", "teaching"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Education",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["xv6fs"]

[tool.pytest.ini_options]
addopts = "-ra"
