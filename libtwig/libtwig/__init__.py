"""libtwig: a local, single-user version-control engine."""

from .errors import RepositoryError
from .merge import MergeResult
from .objects import Blob, Commit, HashRef, LogEntry, Merge, Normal, Root
from .repository import Repository
from .status import StatusReport

__all__ = [
    'Blob',
    'Commit',
    'HashRef',
    'LogEntry',
    'Merge',
    'MergeResult',
    'Normal',
    'Repository',
    'RepositoryError',
    'Root',
    'StatusReport',
]
