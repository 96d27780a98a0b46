"""
Sync planner.

Diffs a local and a remote manifest into the operations that make the
remote path mirror the local tree. Pure functions, no I/O except for
build_local_manifest().
"""

import os
import posixpath
import stat
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, Union

from sshdeploy.exceptions import ManifestUnreadable
from sshdeploy.models.plan import (
    FileEntry,
    Manifest,
    SyncAction,
    SyncOperation,
    SyncPlan,
)


def is_excluded(path: str, exclusions: Iterable[str]) -> bool:
    """
    Check a relative path against glob-style prefix exclusions.

    A pattern excludes a path when it matches the whole path or any leading
    run of its components, so ``.git`` excludes ``.git/config`` and
    ``build/*.map`` excludes ``build/app.js.map``. Patterns are always
    matched against the relative path, never the absolute destination.
    """
    parts = path.split("/")
    prefixes = ["/".join(parts[:i]) for i in range(1, len(parts) + 1)]

    for pattern in exclusions:
        pattern = pattern.strip().strip("/")
        if not pattern:
            continue
        if any(fnmatchcase(prefix, pattern) for prefix in prefixes):
            return True
    return False


def _validate_path(path: str, side: str) -> None:
    if (
        not path
        or posixpath.isabs(path)
        or posixpath.normpath(path) != path
        or ".." in path.split("/")
    ):
        raise ManifestUnreadable(
            f"{side} manifest contains an unsafe path: {path!r}",
            "Manifest paths must be normalized and relative to the destination",
        )


def plan(
    local_manifest: Manifest,
    remote_manifest: Manifest,
    exclusions: Iterable[str] = (),
) -> SyncPlan:
    """
    Compute the operations that make the remote tree mirror the local one.

    Args:
        local_manifest: Source tree manifest
        remote_manifest: Destination tree manifest
        exclusions: Glob-style prefixes never created, updated or deleted

    Returns:
        SyncPlan sorted lexicographically by path

    Raises:
        ManifestUnreadable: If a manifest holds an absolute or escaping path
    """
    exclusions = list(exclusions)
    for path in local_manifest:
        _validate_path(path, "Local")
    for path in remote_manifest:
        _validate_path(path, "Remote")

    operations = []
    for path in sorted(set(local_manifest) | set(remote_manifest)):
        if is_excluded(path, exclusions):
            continue

        local_entry = local_manifest.get(path)
        remote_entry = remote_manifest.get(path)

        if remote_entry is None:
            operations.append(SyncOperation(path, SyncAction.CREATE))
        elif local_entry is None:
            operations.append(SyncOperation(path, SyncAction.DELETE))
        elif local_entry != remote_entry:
            operations.append(SyncOperation(path, SyncAction.UPDATE))

    return SyncPlan(tuple(operations))


def build_local_manifest(
    root: Union[str, Path], exclusions: Iterable[str] = ()
) -> Manifest:
    """
    Enumerate the source tree.

    Each regular file maps to its size and whole-second mtime. Excluded
    directories are not descended into.

    Raises:
        ManifestUnreadable: If the tree cannot be enumerated
    """
    root = Path(root).expanduser()
    exclusions = list(exclusions)

    if not root.is_dir():
        raise ManifestUnreadable(
            f"Source tree '{root}' is not a readable directory",
            "Check that the build produced its output",
        )

    def _raise(error: OSError) -> None:
        raise ManifestUnreadable(
            f"Cannot enumerate source tree: {error.strerror or error}",
            f"Path: {error.filename}",
        )

    manifest: Manifest = {}
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"

        dirnames[:] = sorted(
            name for name in dirnames if not is_excluded(prefix + name, exclusions)
        )

        for name in sorted(filenames):
            rel_path = prefix + name
            if is_excluded(rel_path, exclusions):
                continue
            try:
                file_stat = os.stat(os.path.join(dirpath, name))
            except OSError as e:
                raise ManifestUnreadable(
                    f"Cannot read '{rel_path}': {e.strerror or e}",
                    f"Source tree: {root}",
                ) from e
            if not stat.S_ISREG(file_stat.st_mode):
                continue
            manifest[rel_path] = FileEntry(
                size=file_stat.st_size, fingerprint=str(int(file_stat.st_mtime))
            )

    return manifest
