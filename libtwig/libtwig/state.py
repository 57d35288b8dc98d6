"""Persisted repository state: the branch table, the current branch and the staging area."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import StorageError
from .objects import HashRef
from .staging import StagingArea

logger = logging.getLogger(__name__)


@dataclass
class RepositoryState:
    branches: dict[str, HashRef]
    current_branch: str
    staging: StagingArea = field(default_factory=StagingArea)

    @property
    def head(self) -> HashRef:
        """The commit the current branch points to."""
        return self.branches[self.current_branch]

    def move_current_branch(self, commit_ref: HashRef) -> None:
        logger.debug('Moving branch %s from %s to %s', self.current_branch, self.head.short(), commit_ref.short())
        self.branches[self.current_branch] = commit_ref


def read_state(state_file: Path) -> RepositoryState:
    """Load the repository state.

    :param state_file: The path to the state file.
    :return: The loaded state.
    :raises StorageError: If the file is missing or corrupt."""
    try:
        data = json.loads(state_file.read_text(encoding='utf-8'))
        return RepositoryState(
            branches={name: HashRef(ref) for name, ref in data['branches'].items()},
            current_branch=data['current_branch'],
            staging=StagingArea.from_dict(data['staging']),
        )
    except (OSError, ValueError, KeyError, TypeError) as e:
        msg = f'Error reading repository state from {state_file}'
        raise StorageError(msg) from e


def write_state(state_file: Path, state: RepositoryState) -> None:
    """Write the whole state, replacing the previous file in one step."""
    data = {
        'branches': dict(sorted(state.branches.items())),
        'current_branch': state.current_branch,
        'staging': state.staging.to_dict(),
    }
    tmp_file = state_file.with_name(state_file.name + '.tmp')
    try:
        tmp_file.write_text(json.dumps(data, indent=2, sort_keys=True), encoding='utf-8')
        os.replace(tmp_file, state_file)
    except OSError as e:
        msg = f'Error writing repository state to {state_file}'
        raise StorageError(msg) from e
