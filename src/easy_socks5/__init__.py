"""SOCKS5 handshake and relay engine for proxy servers and clients."""

import pathlib
import sys
from importlib import metadata

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


def get_version() -> str:
    """Read version from pyproject.toml, then from the installed metadata."""
    current_dir = pathlib.Path(__file__).parent
    # Look for pyproject.toml in parent directories
    for parent in [current_dir, *current_dir.parents]:
        pyproject_path = parent / "pyproject.toml"
        if pyproject_path.exists():
            with pyproject_path.open("rb") as f:
                pyproject_data = tomllib.load(f)
            project = pyproject_data.get("project", {})
            if project.get("name") == "easy-socks5":
                return project["version"]

    try:
        return metadata.version("easy-socks5")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__version__ = get_version()
