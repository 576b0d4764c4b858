# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Archive extraction and install-target resolution.

A `.crate` file is a gzipped tarball holding one `<name>-<version>/`
directory. The version is not known ahead of time, so the expected name is
a template such as `kani-verifier-{version}`.

resolve_single_match turns that template into an explicit matcher and
insists on exactly one hit. Zero hits means the archive isn't what we
think it is. Several hits means we can't know which one to install. Both
are errors, raised before the package manager is ever called.
"""

import re
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from bundleprobe.config.schema import VERSION_PLACEHOLDER
from bundleprobe.logging.logger import get_logger
from bundleprobe.pipeline.errors import ExtractionError
from bundleprobe.utils.paths import validate_path_within

logger = get_logger(__name__)

# A version starts with a digit: 0.39.0, 1.0.0-rc.1, 2.3.4+build5
_VERSION_REGEX = r"(?P<version>[0-9][0-9A-Za-z.+\-]*)"


@dataclass(frozen=True)
class ResolvedDirectory:
    """The single directory that matched the pattern."""

    path: Path
    version: Optional[str]


def _check_member(member: tarfile.TarInfo, destination: Path) -> None:
    name = member.name
    if name.startswith(("/", "\\")):
        raise ExtractionError(f"Archive member has an absolute path: {name}")
    if ".." in Path(name).parts:
        raise ExtractionError(f"Archive member escapes the extraction directory: {name}")
    if member.issym() or member.islnk():
        raise ExtractionError(f"Archive member is a link: {name}")
    if not (member.isfile() or member.isdir()):
        raise ExtractionError(f"Archive member is not a regular file or directory: {name}")
    try:
        validate_path_within(destination / name, destination)
    except ValueError as err:
        raise ExtractionError(str(err)) from err


def extract_archive(archive_path: Path, destination: Path) -> int:
    """
    Extract a (possibly compressed) tarball into destination.

    Every member is checked before anything is written: absolute paths,
    `..` components, links, and special files abort the whole extraction.

    Returns:
        Number of regular files extracted.

    Raises:
        ExtractionError: Missing, unreadable, or unsafe archive.
    """
    if not archive_path.is_file():
        raise ExtractionError(f"Archive not found: {archive_path}")

    destination.mkdir(parents=True, exist_ok=True)
    file_count = 0

    try:
        with tarfile.open(archive_path, "r:*") as tar:
            members = tar.getmembers()
            for member in members:
                _check_member(member, destination)
            for member in members:
                tar.extract(member, path=destination, set_attrs=False)
                if member.isfile():
                    file_count += 1
    except (tarfile.TarError, EOFError, OSError) as err:
        raise ExtractionError(f"Cannot extract {archive_path.name}: {err}") from err

    logger.info(
        "Archive extracted",
        extra={
            "archive": archive_path.name,
            "destination": str(destination),
            "files": file_count,
        },
    )
    return file_count


def compile_directory_pattern(pattern: str) -> re.Pattern[str]:
    """
    Turn a directory template into an anchored regex.

    Everything outside `{version}` is matched literally.
    """
    if VERSION_PLACEHOLDER not in pattern:
        return re.compile(re.escape(pattern))
    prefix, _, suffix = pattern.partition(VERSION_PLACEHOLDER)
    return re.compile(re.escape(prefix) + _VERSION_REGEX + re.escape(suffix))


def resolve_single_match(directory: Path, pattern: str) -> ResolvedDirectory:
    """
    Find the one subdirectory of `directory` whose name matches `pattern`.

    Raises:
        ExtractionError: If zero or several directories match.
    """
    matcher = compile_directory_pattern(pattern)
    matches: list[tuple[Path, Optional[str]]] = []

    for candidate in sorted(directory.iterdir()):
        if not candidate.is_dir():
            continue
        found = matcher.fullmatch(candidate.name)
        if found is None:
            continue
        version = found.groupdict().get("version")
        matches.append((candidate, version))

    if not matches:
        raise ExtractionError(
            f"No directory matching '{pattern}' in {directory}",
            output="\n".join(sorted(p.name for p in directory.iterdir())),
        )
    if len(matches) > 1:
        names = [path.name for path, _ in matches]
        raise ExtractionError(
            f"Ambiguous install target: {len(matches)} directories match '{pattern}'",
            output="\n".join(names),
        )

    path, version = matches[0]
    logger.debug("Install target resolved", extra={"path": str(path), "version": version})
    return ResolvedDirectory(path=path, version=version)
