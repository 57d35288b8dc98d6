"""Core object types: blobs, commits and log entries."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .constants import SHORT_HASH_LENGTH

ENCODING = 'utf-8'
ENCODING_ERRORS = 'surrogateescape'


class HashRef(str):
    """A content fingerprint used as an object identifier."""

    def short(self, length: int = SHORT_HASH_LENGTH) -> str:
        return self[:length]


@dataclass(frozen=True)
class Blob:
    """An immutable snapshot of one file's bytes."""

    content: bytes

    @property
    def text(self) -> str:
        """The decoded view of the content. Undecodable bytes survive the round trip."""
        return self.content.decode(ENCODING, ENCODING_ERRORS)

    @classmethod
    def from_text(cls, text: str) -> 'Blob':
        return cls(text.encode(ENCODING, ENCODING_ERRORS))


@dataclass(frozen=True)
class Root:
    """Lineage of the initial commit: no parents."""


@dataclass(frozen=True)
class Normal:
    """Lineage of an ordinary commit."""

    parent: HashRef


@dataclass(frozen=True)
class Merge:
    """Lineage of a merge commit. ``parent`` is the branch merged into."""

    parent: HashRef
    second_parent: HashRef


type Lineage = Root | Normal | Merge


def parents_of(lineage: Lineage) -> tuple[HashRef, ...]:
    """Return the parents of a lineage, first parent first."""
    match lineage:
        case Root():
            return ()
        case Normal(parent):
            return (parent,)
        case Merge(parent, second_parent):
            return (parent, second_parent)
        case _:
            msg = f'Invalid lineage: {lineage!r}'
            raise TypeError(msg)


def lineage_from_parents(parents: list[str] | tuple[str, ...]) -> Lineage:
    match parents:
        case []:
            return Root()
        case [parent]:
            return Normal(HashRef(parent))
        case [parent, second_parent]:
            return Merge(HashRef(parent), HashRef(second_parent))
        case _:
            msg = f'A commit has at most two parents, got {len(parents)}'
            raise ValueError(msg)


@dataclass(frozen=True)
class Commit:
    """A point in history.

    ``files`` is a complete snapshot of the tracked files (name to blob
    fingerprint), never a delta against the parent. ``ancestors`` lists every
    transitive ancestor once, oldest first along the first-parent line."""

    timestamp: str
    message: str
    lineage: Lineage
    files: dict[str, HashRef] = field(default_factory=dict)
    ancestors: tuple[HashRef, ...] = ()

    @property
    def parents(self) -> tuple[HashRef, ...]:
        return parents_of(self.lineage)

    @property
    def parent(self) -> HashRef | None:
        parents = self.parents
        return parents[0] if parents else None

    def to_dict(self) -> dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'message': self.message,
            'parents': list(self.parents),
            'files': dict(sorted(self.files.items())),
            'ancestors': list(self.ancestors),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Commit':
        return cls(
            timestamp=data['timestamp'],
            message=data['message'],
            lineage=lineage_from_parents(data['parents']),
            files={name: HashRef(blob_hash) for name, blob_hash in data['files'].items()},
            ancestors=tuple(HashRef(ancestor) for ancestor in data['ancestors']),
        )


@dataclass
class LogEntry:
    """A class representing a log entry for a branch or commit history."""

    commit_ref: HashRef
    commit: Commit


def format_timestamp(moment: datetime) -> str:
    """Format a timestamp the way log entries show it, e.g. ``Thu Nov 9 20:00:05 2017 -0800``."""
    return f'{moment:%a %b} {moment.day} {moment:%H:%M:%S %Y %z}'


def format_log_entry(entry: LogEntry) -> str:
    """Render a log entry as a ``===`` block followed by a blank line."""
    return f'===\ncommit {entry.commit_ref}\nDate: {entry.commit.timestamp}\n{entry.commit.message}\n\n'
