"""
Sync Plan Models

Manifests of file trees and the ordered operations that reconcile them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Tuple


class SyncAction(Enum):
    """Action applied to a single remote path."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class FileEntry:
    """Size and modification fingerprint of one file."""

    size: int
    fingerprint: str


# Relative POSIX path -> FileEntry
Manifest = Dict[str, FileEntry]


@dataclass(frozen=True)
class SyncOperation:
    """One planned change to the remote tree."""

    path: str
    action: SyncAction

    @property
    def is_delete(self) -> bool:
        return self.action == SyncAction.DELETE

    def __str__(self) -> str:
        return f"{self.action.value} {self.path}"


@dataclass(frozen=True)
class SyncPlan:
    """Operations sorted lexicographically by path."""

    operations: Tuple[SyncOperation, ...] = ()

    @property
    def is_empty(self) -> bool:
        """Check if there is nothing to do."""
        return len(self.operations) == 0

    @property
    def transfer_operations(self) -> Tuple[SyncOperation, ...]:
        """Creates and updates, in plan order."""
        return tuple(op for op in self.operations if not op.is_delete)

    @property
    def delete_operations(self) -> Tuple[SyncOperation, ...]:
        """Deletes, in plan order."""
        return tuple(op for op in self.operations if op.is_delete)

    @property
    def blocking_deletes(self) -> Tuple[SyncOperation, ...]:
        """
        Deletes that must run before the transfers.

        A remote file in the way of a local directory (``docs`` vs
        ``docs/index.html``) or a remote directory in the way of a local file
        (``docs/a.html`` vs ``docs``) has to go first, otherwise the upload
        can never succeed.
        """
        transfers = [op.path for op in self.transfer_operations]
        return tuple(
            op
            for op in self.delete_operations
            if any(_contains(op.path, path) or _contains(path, op.path) for path in transfers)
        )

    @property
    def apply_order(self) -> Tuple[SyncOperation, ...]:
        """Blocking deletes, then creates and updates, then the other deletes."""
        blocking = self.blocking_deletes
        remaining = tuple(op for op in self.delete_operations if op not in blocking)
        return blocking + self.transfer_operations + remaining

    def summary(self) -> Dict[str, int]:
        """Count operations per action."""
        counts = {action.value: 0 for action in SyncAction}
        for op in self.operations:
            counts[op.action.value] += 1
        return counts

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self):
        return iter(self.operations)

    def __repr__(self) -> str:
        counts = self.summary()
        return (
            f"SyncPlan(create={counts['create']}, update={counts['update']}, "
            f"delete={counts['delete']})"
        )


def _contains(directory: str, path: str) -> bool:
    return path.startswith(directory + "/")


def parent_directories(paths: Iterable[str]) -> Tuple[str, ...]:
    """All ancestor directories of the given relative paths, deepest first."""
    directories = set()
    for path in paths:
        parent = path.rpartition("/")[0]
        while parent:
            directories.add(parent)
            parent = parent.rpartition("/")[0]
    return tuple(sorted(directories, key=lambda d: (-d.count("/"), d)))
