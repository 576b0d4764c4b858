# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Path utilities for bundleprobe.

  - configured paths may start with `~` and are expanded here, in one place
  - directory creation is explicit
  - archive members must never escape their extraction directory
"""

from pathlib import Path


def expand_path(raw: str | Path) -> Path:
    """Expand `~` and return the path as given otherwise (no resolve)."""
    return Path(raw).expanduser()


def ensure_directory(path: Path) -> Path:
    """
    Create a directory (and parents) if it doesn't exist. Returns the path for chaining.
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def validate_path_within(target: Path, root: Path) -> Path:
    """
    Make sure a path doesn't escape the given root directory.

    Both paths are resolved before comparing, so `../../etc/passwd` style
    names get caught. Comparison is component-wise: `/tmp/work-evil` is not
    inside `/tmp/work`.

    Returns:
        The resolved absolute path if it's safe.

    Raises:
        ValueError: If the path escapes the root.
    """
    resolved_target = target.resolve()
    resolved_root = root.resolve()

    try:
        resolved_target.relative_to(resolved_root)
    except ValueError as err:
        raise ValueError(
            f"Path '{target}' resolves to '{resolved_target}' which is outside "
            f"'{resolved_root}'. This is not allowed."
        ) from err

    return resolved_target
