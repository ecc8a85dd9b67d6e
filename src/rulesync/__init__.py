"""rulesync: turn repository rule files into structured code-review rules."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("rulesync")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
