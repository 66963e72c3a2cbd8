# src/mapdepot_sdk/__init__.py
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from . import auth, maps

__all__ = [
    "auth",
    "maps",
]

try:
    __version__ = _pkg_version("mapdepot")
except PackageNotFoundError:
    __version__ = "0.0.0"
