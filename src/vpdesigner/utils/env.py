# ================================================================================
# Environment and dependency version utilities
# ================================================================================

from __future__ import annotations

import importlib.metadata
import shutil
from pathlib import Path

LIBRARIES = ("pysam", "pandas", "numpy", "scipy", "pydantic")


def get_library_version(name: str) -> str | None:
    """Return the installed version of a Python distribution, or ``None``."""
    try:
        return importlib.metadata.version(name)
    except importlib.metadata.PackageNotFoundError:
        return None


def get_library_versions(libraries: tuple[str, ...] = LIBRARIES) -> dict[str, str | None]:
    """Return ``{library: version_string}`` for each library (``None`` if missing)."""
    return {lib: get_library_version(lib) for lib in libraries}


def get_vpdesigner_version() -> str:
    """Return the installed vpdesigner version."""
    try:
        return importlib.metadata.version("vpdesigner")
    except importlib.metadata.PackageNotFoundError:
        from vpdesigner.version import __version__

        return __version__


def check_disk_space(path: str | Path, threshold_gb: float = 1.0) -> bool:
    """Verify that the target directory has sufficient free disk space.

    Args:
        path: Path to the directory to check.
        threshold_gb: Minimum free space required in GB (default: 1.0).

    Returns:
        True if space is above threshold, False otherwise.
    """
    from loguru import logger

    path = Path(path)
    check_path = path if path.exists() else path.parent

    # Walk up to the closest existing ancestor
    while not check_path.exists() and check_path.parent != check_path:
        check_path = check_path.parent

    try:
        usage = shutil.disk_usage(check_path)
        free_gb = usage.free / (1024**3)

        if free_gb < threshold_gb:
            logger.warning(
                f"Low disk space: {free_gb:.2f} GB free on {check_path}. "
                f"Threshold is {threshold_gb} GB. Output files may not be written."
            )
            return False
        return True
    except (OSError, ValueError) as e:
        logger.debug(f"Could not check disk space on {check_path}: {e}")
        return True
