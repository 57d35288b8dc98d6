"""Merge helpers for libtwig.

Merging is whole-file: each file either keeps one side's content or becomes a
conflict file holding both sides between markers. The functions here are pure
over the commit graph; ``Repository.merge`` applies their decisions."""

import logging
from collections import deque
from collections.abc import Callable, Collection
from dataclasses import dataclass

from .constants import CONFLICT_END, CONFLICT_SEPARATOR, CONFLICT_START
from .errors import MergeError
from .objects import Commit, HashRef

logger = logging.getLogger(__name__)

type CommitLoader = Callable[[HashRef], Commit]

FAST_FORWARD = 'fast_forward'
THREE_WAY = 'merge'


@dataclass(frozen=True)
class MergeBase:
    """The pivot chosen for a merge. ``fast_forward`` is set when it is the current tip itself."""

    commit_ref: HashRef
    fast_forward: bool = False


@dataclass(frozen=True)
class MergeResult:
    """Represents the outcome of merging a branch into the current one."""

    strategy: str
    commit: HashRef
    base: HashRef
    conflicts: tuple[str, ...] = ()

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


@dataclass(frozen=True)
class Take:
    """Write the target branch's version of a file and stage it."""

    name: str
    blob_hash: HashRef


@dataclass(frozen=True)
class Conflict:
    """Write a conflict file. A side without the file contributes empty content."""

    name: str
    current: HashRef | None
    target: HashRef | None


@dataclass(frozen=True)
class Remove:
    """Remove a file the target branch deleted and the current branch left alone."""

    name: str


type FileAction = Take | Conflict | Remove


def find_ancestor_in(load_commit: CommitLoader, start: HashRef, ancestors: Collection[HashRef]) -> HashRef | None:
    """Search breadth-first from ``start`` for the first commit contained in ``ancestors``.

    First parents are queued before second parents, so at equal distance the
    first-parent line wins.

    :param load_commit: Loads a commit by its fingerprint.
    :param start: The commit to start the search from.
    :param ancestors: The commits that end the search.
    :return: The first commit found, or None if the search is exhausted."""
    queue = deque([start])
    seen: set[HashRef] = set()

    while queue:
        commit_ref = queue.popleft()
        if commit_ref in seen:
            continue
        seen.add(commit_ref)

        if commit_ref in ancestors:
            return commit_ref

        queue.extend(load_commit(commit_ref).parents)

    return None


def select_merge_base(load_commit: CommitLoader, current_ref: HashRef, target_ref: HashRef) -> MergeBase:
    """Choose the merge base for merging ``target_ref`` into ``current_ref``.

    Two candidates are found: A by searching from the target tip for a
    commit in the current tip's ancestors, B by the symmetric search from the
    current tip. If B is the current tip the merge is a fast-forward.
    Otherwise the deeper candidate in the current tip's ancestor list is
    chosen, with ties going to B. With several merge bases only one is
    chosen; this is not a lowest-common-ancestor computation.

    :raises MergeError: If the two commits share no history."""
    current = load_commit(current_ref)
    target = load_commit(target_ref)

    candidate_b = find_ancestor_in(load_commit, current_ref, set(target.ancestors))
    if candidate_b == current_ref:
        return MergeBase(current_ref, fast_forward=True)

    candidate_a = find_ancestor_in(load_commit, target_ref, set(current.ancestors))
    if candidate_a is None or candidate_b is None:
        msg = f'No common ancestor found for {current_ref.short()} and {target_ref.short()}'
        raise MergeError(msg)

    depth_a = current.ancestors.index(candidate_a)
    depth_b = current.ancestors.index(candidate_b)
    chosen = candidate_a if depth_a > depth_b else candidate_b
    logger.debug('Merge base candidates %s (depth %d) and %s (depth %d), chose %s',
                 candidate_a.short(), depth_a, candidate_b.short(), depth_b, chosen.short())

    return MergeBase(chosen)


def plan_merge(base: Commit, current: Commit, target: Commit) -> list[FileAction]:
    """Classify every file touched by either side against the merge base.

    Files in the target tip are handled first, then files of the base that
    the target deleted. Within each pass names are visited in sorted order."""
    actions: list[FileAction] = []

    for name in sorted(target.files):
        base_hash = base.files.get(name)
        current_hash = current.files.get(name)
        target_hash = target.files[name]

        if base_hash is not None:
            if target_hash == base_hash:
                continue
            if current_hash == base_hash:
                actions.append(Take(name, target_hash))
            elif current_hash != target_hash:
                actions.append(Conflict(name, current_hash, target_hash))
            # Both sides changed the file to the same content: keep it.
        elif current_hash is None or current_hash == target_hash:
            actions.append(Take(name, target_hash))
        else:
            actions.append(Conflict(name, current_hash, target_hash))

    for name in sorted(base.files):
        current_hash = current.files.get(name)
        if name in target.files or current_hash is None:
            continue
        if current_hash == base.files[name]:
            actions.append(Remove(name))
        else:
            actions.append(Conflict(name, current_hash, None))

    return actions


def _conflict_section(text: str) -> str:
    if text and not text.endswith('\n'):
        return text + '\n'
    return text


def conflict_text(current: str, target: str) -> str:
    """Build the contents of a conflicted file.

    >>> conflict_text('2\\n', '3\\n')
    '<<<<<<< HEAD\\n2\\n=======\\n3\\n>>>>>>>\\n'
    """
    return CONFLICT_START + _conflict_section(current) + CONFLICT_SEPARATOR + _conflict_section(target) + CONFLICT_END
