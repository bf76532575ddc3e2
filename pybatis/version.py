from importlib import metadata
from pathlib import Path

import tomli as tomllib


def get_version() -> str:
    """
    Get the pybatis version.

    Reads pyproject.toml in a source checkout, otherwise the installed
    distribution metadata.

    Returns:
        Version string, or "unknown" if not found
    """
    pyproject_path = Path(__file__).parent.parent / "pyproject.toml"

    if pyproject_path.exists():
        with open(pyproject_path, "rb") as f:
            pyproject = tomllib.load(f)
        project = pyproject.get("project", {})
        if project.get("name") == "pybatis":
            return project.get("version", "unknown")

    try:
        return metadata.version("pybatis")
    except metadata.PackageNotFoundError:
        return "unknown"
