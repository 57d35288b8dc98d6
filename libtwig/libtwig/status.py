"""Status reporting: compare the working directory, the staging area and the head commit."""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

from .objects import Commit, HashRef
from .staging import StagingArea

MODIFIED = 'modified'
DELETED = 'deleted'


@dataclass
class StatusReport:
    """Every section is sorted by file name."""

    current_branch: str
    branches: list[str] = field(default_factory=list)
    staged: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[tuple[str, str]] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)


def compute_status(branches: Iterable[str], current_branch: str, head: Commit, staging: StagingArea,
                   working_files: Mapping[str, HashRef], is_stored: Callable[[HashRef], bool]) -> StatusReport:
    """Classify every file as staged, removed, modified-but-unstaged or untracked.

    :param branches: All branch names.
    :param current_branch: The name of the checked out branch.
    :param head: The commit the current branch points to.
    :param staging: The current staging area.
    :param working_files: The working directory's files, name to content fingerprint.
    :param is_stored: Whether a fingerprint is in the permanent object store.
    :return: The status report."""
    modified: set[tuple[str, str]] = set()

    for name, working_hash in working_files.items():
        expected = staging.added.get(name, head.files.get(name))
        if expected is not None and name not in staging.removed and working_hash != expected:
            modified.add((name, MODIFIED))

    for name in staging.added:
        if name not in working_files:
            modified.add((name, DELETED))

    for name in head.files:
        if name not in staging.removed and name not in working_files:
            modified.add((name, DELETED))

    untracked = [name for name, working_hash in working_files.items()
                 if name not in staging.added and not is_stored(working_hash)]

    return StatusReport(
        current_branch=current_branch,
        branches=sorted(branches),
        staged=sorted(staging.added),
        removed=sorted(staging.removed),
        modified=sorted(modified),
        untracked=sorted(untracked),
    )


def format_status(report: StatusReport) -> str:
    sections = [
        ('Branches', [f'*{name}' if name == report.current_branch else name for name in report.branches]),
        ('Staged Files', report.staged),
        ('Removed Files', report.removed),
        ('Modifications Not Staged For Commit', [f'{name} ({kind})' for name, kind in report.modified]),
        ('Untracked Files', report.untracked),
    ]
    return ''.join(f'=== {title} ===\n' + ''.join(f'{line}\n' for line in lines) + '\n'
                   for title, lines in sections)
