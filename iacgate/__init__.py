"""``import iacgate`` entry point; the code lives in the top-level ``cli`` and ``core`` packages."""

from importlib import import_module
from importlib.metadata import PackageNotFoundError, version

_PACKAGES = ("cli", "core")

__all__ = [*_PACKAGES, "__version__"]

try:
    __version__ = version("iacgate")
except PackageNotFoundError:  # source checkout without an install
    __version__ = "0.1.0"


def __getattr__(name: str):
    if name in _PACKAGES:
        return import_module(name)
    raise AttributeError(f"module 'iacgate' has no attribute {name!r}")
