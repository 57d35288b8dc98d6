"""libtwig repository management."""

import logging
from collections.abc import Callable, Generator
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Concatenate

from .constants import (COMMITS_SUBDIR, DEFAULT_BRANCH, DEFAULT_REPO_DIR, EPOCH, HASH_CHARSET, INITIAL_COMMIT_MESSAGE,
                        MIN_ABBREV_LENGTH, OBJECTS_SUBDIR, STAGING_SUBDIR, STATE_FILE)
from .errors import (AlreadyOnBranch, AmbiguousCommitId, BranchIsAncestor, CannotRemoveCurrentBranch, DuplicateBranch,
                     FileNotInCommit, MissingCommitMessage, NoSuchBranch, NoSuchCommit, NoSuchFile, NothingToCommit,
                     NothingToRemove, RepositoryExistsError, RepositoryNotFoundError, SelfMerge, StorageError,
                     UncommittedChangesPresentAtMerge, WouldOverwriteUntracked)
from .merge import FAST_FORWARD, THREE_WAY, Conflict, MergeResult, Remove, Take, conflict_text, plan_merge, \
    select_merge_base
from .objects import Blob, Commit, HashRef, LogEntry, Merge, Normal, Root, format_timestamp, parents_of
from .plumbing import (hash_object, is_hash, iter_object_hashes, load_blob, load_commit, object_exists,
                       read_file_blob, save_commit, write_file_blob)
from .staging import StagingArea
from .state import RepositoryState, read_state, write_state
from .status import StatusReport, compute_status

logger = logging.getLogger(__name__)


class Repository:
    """Represents a twig repository.

    The persisted state (branch table, current branch and staging area) is
    read at the start of every operation and written back whole at the end of
    every mutating one. Each operation validates all of its preconditions
    before touching the working directory, the staging area or any branch."""

    def __init__(self, working_dir: Path | str, repo_dir: Path | str | None = None,
                 clock: Callable[[], datetime] | None = None) -> None:
        """Initialize a Repository instance. The repository is not created on disk until `init()` is called.

        :param working_dir: The working directory where the repository will be located.
        :param repo_dir: The name of the repository directory within the working directory. Defaults to '.twig'.
        :param clock: Returns the timestamp for new commits. Defaults to the local wall clock."""
        self.working_dir = Path(working_dir)

        if repo_dir is None:
            self.repo_dir = Path(DEFAULT_REPO_DIR)
        else:
            self.repo_dir = Path(repo_dir)

        self.clock = clock or (lambda: datetime.now().astimezone())

    def init(self, default_branch: str = DEFAULT_BRANCH) -> HashRef:
        """Initialize a new twig repository in the working directory.

        :param default_branch: The name of the default branch to create. Defaults to 'master'.
        :return: The fingerprint of the initial commit.
        :raises RepositoryExistsError: If the repository already exists."""
        if self.exists():
            msg = 'A Twig version-control system already exists in the current directory.'
            raise RepositoryExistsError(msg)

        try:
            self.repo_path().mkdir(parents=True)
            self.objects_dir().mkdir()
            self.commits_dir().mkdir()
            self.staging_dir().mkdir()
        except OSError as e:
            msg = f'Cannot create repository at {self.repo_path()}'
            raise StorageError(msg) from e

        initial_commit = Commit(format_timestamp(EPOCH), INITIAL_COMMIT_MESSAGE, Root())
        commit_ref = save_commit(self.commits_dir(), initial_commit)
        write_state(self.state_file(), RepositoryState({default_branch: commit_ref}, default_branch))

        logger.debug('Initialized repository at %s on branch %s', self.repo_path(), default_branch)
        return commit_ref

    def exists(self) -> bool:
        """Check if the repository exists in the working directory.

        :return: True if the repository exists, False otherwise."""
        return self.repo_path().exists()

    def repo_path(self) -> Path:
        """Get the path to the repository directory.

        :return: The path to the repository directory."""
        return self.working_dir / self.repo_dir

    def objects_dir(self) -> Path:
        """Get the path to the permanent blob store within the repository."""
        return self.repo_path() / OBJECTS_SUBDIR

    def commits_dir(self) -> Path:
        """Get the path to the commit store within the repository."""
        return self.repo_path() / COMMITS_SUBDIR

    def staging_dir(self) -> Path:
        return self.repo_path() / STAGING_SUBDIR

    def state_file(self) -> Path:
        return self.repo_path() / STATE_FILE

    @staticmethod
    def requires_repo[**P, R](func: Callable[Concatenate['Repository', P], R]) -> \
            Callable[Concatenate['Repository', P], R]:
        """Decorate a Repository method to ensure that the repository exists before executing the method.

        :param func: The method to decorate.
        :return: A wrapper function that checks for the repository's existence."""

        @wraps(func)
        def _verify_repo(self: 'Repository', *args: P.args, **kwargs: P.kwargs) -> R:
            if not self.exists():
                msg = 'Not in an initialized Twig directory.'
                raise RepositoryNotFoundError(msg)

            return func(self, *args, **kwargs)

        return _verify_repo

    @requires_repo
    def read_state(self) -> RepositoryState:
        return read_state(self.state_file())

    @requires_repo
    def load_commit(self, commit_ref: HashRef) -> Commit:
        """Load a commit by its full fingerprint.

        :raises StorageError: If the commit cannot be loaded."""
        return load_commit(self.commits_dir(), commit_ref)

    @requires_repo
    def head_commit(self) -> HashRef:
        """Return the fingerprint of the commit the current branch points to."""
        return self.read_state().head

    @requires_repo
    def current_branch(self) -> str:
        return self.read_state().current_branch

    @requires_repo
    def branches(self) -> dict[str, HashRef]:
        """Get every branch and the commit it points to, sorted by name."""
        return dict(sorted(self.read_state().branches.items()))

    @requires_repo
    def staging(self) -> StagingArea:
        return self.read_state().staging

    @requires_repo
    def tracked_files(self) -> dict[str, HashRef]:
        """The head commit's files, name to blob fingerprint."""
        return dict(self.load_commit(self.head_commit()).files)

    def working_files(self) -> list[str]:
        """List the plain files at the top of the working directory, sorted by name."""
        return sorted(item.name for item in self.working_dir.iterdir() if item.is_file())

    def _working_hashes(self) -> dict[str, HashRef]:
        return {name: hash_object(read_file_blob(self.working_dir / name)) for name in self.working_files()}

    @requires_repo
    def add_file(self, name: str) -> HashRef | None:
        """Stage a working directory file for the next commit.

        If the file's content equals the version tracked by the head commit,
        any staging of the name (addition or removal) is undone instead.

        :param name: The name of the file to add.
        :return: The fingerprint of the staged content, or None if nothing is staged.
        :raises NoSuchFile: If the file does not exist in the working directory.
        :raises RepositoryNotFoundError: If the repository does not exist."""
        if not (self.working_dir / name).is_file():
            msg = 'File does not exist.'
            raise NoSuchFile(msg)

        state = self.read_state()
        head = self.load_commit(state.head)
        blob_hash = self._stage_working_file(state, head, name)
        write_state(self.state_file(), state)

        return blob_hash

    def _stage_working_file(self, state: RepositoryState, head: Commit, name: str) -> HashRef | None:
        blob = read_file_blob(self.working_dir / name)
        if head.files.get(name) == hash_object(blob):
            state.staging.unstage(name, self.staging_dir())
            state.staging.unmark_removed(name)
            return None

        return state.staging.stage_add(name, blob, self.staging_dir())

    @requires_repo
    def commit(self, message: str) -> HashRef:
        """Commit the staged changes on top of the head commit.

        :param message: The commit message.
        :return: The fingerprint of the new commit.
        :raises MissingCommitMessage: If the message is empty.
        :raises NothingToCommit: If nothing is staged.
        :raises RepositoryNotFoundError: If the repository does not exist."""
        if not message:
            msg = 'Please enter a commit message.'
            raise MissingCommitMessage(msg)

        state = self.read_state()
        if state.staging.is_empty():
            msg = 'No changes added to the commit.'
            raise NothingToCommit(msg)

        commit_ref = self._create_commit(state, message, Normal(state.head))
        write_state(self.state_file(), state)

        return commit_ref

    def _create_commit(self, state: RepositoryState, message: str, lineage: Normal | Merge) -> HashRef:
        parent = self.load_commit(lineage.parent)

        files = dict(parent.files)
        files.update(state.staging.added)
        for name in state.staging.removed:
            files.pop(name, None)

        commit = Commit(format_timestamp(self.clock()), message, lineage, files, self._ancestors_of(lineage))

        # Staged blobs must be permanent before any commit refers to them.
        state.staging.clear(self.staging_dir(), self.objects_dir())
        commit_ref = save_commit(self.commits_dir(), commit)
        state.move_current_branch(commit_ref)

        return commit_ref

    def _ancestors_of(self, lineage: Normal | Merge) -> tuple[HashRef, ...]:
        """Every parent and every ancestor of a parent, once each, first-parent history first."""
        ancestors: list[HashRef] = []
        seen: set[HashRef] = set()

        for parent_ref in parents_of(lineage):
            for ancestor in (*self.load_commit(parent_ref).ancestors, parent_ref):
                if ancestor not in seen:
                    seen.add(ancestor)
                    ancestors.append(ancestor)

        return tuple(ancestors)

    @requires_repo
    def rm(self, name: str) -> None:
        """Unstage a file, or stage a tracked file for removal and delete it from the working directory.

        :param name: The name of the file to remove.
        :raises NothingToRemove: If the file is neither staged nor tracked by the head commit.
        :raises RepositoryNotFoundError: If the repository does not exist."""
        state = self.read_state()
        head = self.load_commit(state.head)

        if name in state.staging.added:
            state.staging.unstage(name, self.staging_dir())
        elif name in head.files:
            state.staging.mark_removed(name, self.staging_dir())
            self._delete_working_file(name)
        else:
            msg = 'No reason to remove the file.'
            raise NothingToRemove(msg)

        write_state(self.state_file(), state)

    @requires_repo
    def log(self) -> Generator[LogEntry, None, None]:
        """Walk the history from the head commit along first parents.

        :return: A generator yielding LogEntry objects, newest first.
        :raises StorageError: If a commit cannot be loaded.
        :raises RepositoryNotFoundError: If the repository does not exist."""
        current_hash: HashRef | None = self.head_commit()

        while current_hash:
            commit = self.load_commit(current_hash)
            yield LogEntry(current_hash, commit)

            current_hash = commit.parent

    @requires_repo
    def global_log(self) -> Generator[LogEntry, None, None]:
        """Yield every commit ever made, reachable or not, ordered by fingerprint."""
        for commit_hash in iter_object_hashes(self.commits_dir()):
            yield LogEntry(commit_hash, self.load_commit(commit_hash))

    @requires_repo
    def find(self, message: str) -> list[HashRef]:
        """Find the commits whose message is exactly ``message``.

        :raises NoSuchCommit: If no commit has that message."""
        matches = [entry.commit_ref for entry in self.global_log() if entry.commit.message == message]
        if not matches:
            msg = 'Found no commit with that message.'
            raise NoSuchCommit(msg)

        return matches

    @requires_repo
    def resolve_commit_id(self, commit_id: str) -> HashRef:
        """Resolve a full or abbreviated commit id to a commit fingerprint.

        :param commit_id: A full fingerprint or a unique prefix of at least four characters.
        :return: The matching commit fingerprint.
        :raises NoSuchCommit: If no commit matches.
        :raises AmbiguousCommitId: If the prefix matches more than one commit."""
        commit_id = commit_id.lower()
        if is_hash(commit_id):
            if object_exists(self.commits_dir(), commit_id):
                return HashRef(commit_id)
        elif len(commit_id) >= MIN_ABBREV_LENGTH and all(c in HASH_CHARSET for c in commit_id):
            matches = [commit_hash for commit_hash in iter_object_hashes(self.commits_dir())
                       if commit_hash.startswith(commit_id)]
            if len(matches) == 1:
                return matches[0]
            if len(matches) > 1:
                msg = f'Commit id {commit_id} is ambiguous.'
                raise AmbiguousCommitId(msg)

        msg = 'No commit with that id exists.'
        raise NoSuchCommit(msg)

    @requires_repo
    def checkout_file(self, name: str, commit_id: str | None = None) -> None:
        """Overwrite a working directory file with its version in a commit. The staging area is untouched.

        :param name: The name of the file to check out.
        :param commit_id: The commit to take the file from. Defaults to the head commit.
        :raises NoSuchCommit: If the commit id does not resolve.
        :raises FileNotInCommit: If the commit does not track the file."""
        commit_ref = self.head_commit() if commit_id is None else self.resolve_commit_id(commit_id)
        commit = self.load_commit(commit_ref)
        if name not in commit.files:
            msg = 'File does not exist in that commit.'
            raise FileNotInCommit(msg)

        self._write_working_file(name, load_blob(self.objects_dir(), commit.files[name]))

    @requires_repo
    def checkout_branch(self, branch: str) -> None:
        """Switch to another branch, replacing the tracked files of the working directory.

        :param branch: The name of the branch to check out.
        :raises NoSuchBranch: If the branch does not exist.
        :raises AlreadyOnBranch: If the branch is the current branch.
        :raises WouldOverwriteUntracked: If an untracked file would be overwritten."""
        state = self.read_state()
        if branch not in state.branches:
            msg = 'No such branch exists.'
            raise NoSuchBranch(msg)
        if branch == state.current_branch:
            msg = 'No need to checkout the current branch.'
            raise AlreadyOnBranch(msg)

        self._replace_working_tree(self.load_commit(state.head), self.load_commit(state.branches[branch]))
        state.current_branch = branch
        state.staging.discard(self.staging_dir())
        write_state(self.state_file(), state)

        logger.debug('Checked out branch %s at %s', branch, state.head)

    @requires_repo
    def add_branch(self, branch: str) -> None:
        """Add a new branch pointing at the head commit.

        :param branch: The name of the branch to add.
        :raises ValueError: If the branch name is empty.
        :raises DuplicateBranch: If the branch already exists.
        :raises RepositoryNotFoundError: If the repository does not exist."""
        if not branch:
            msg = 'Branch name is required'
            raise ValueError(msg)

        state = self.read_state()
        if branch in state.branches:
            msg = 'A branch with that name already exists.'
            raise DuplicateBranch(msg)

        state.branches[branch] = state.head
        write_state(self.state_file(), state)

    @requires_repo
    def delete_branch(self, branch: str) -> None:
        """Delete a branch. The commits it pointed to are kept.

        :param branch: The name of the branch to delete.
        :raises ValueError: If the branch name is empty.
        :raises NoSuchBranch: If the branch does not exist.
        :raises CannotRemoveCurrentBranch: If the branch is the current branch.
        :raises RepositoryNotFoundError: If the repository does not exist."""
        if not branch:
            msg = 'Branch name is required'
            raise ValueError(msg)

        state = self.read_state()
        if branch not in state.branches:
            msg = 'A branch with that name does not exist.'
            raise NoSuchBranch(msg)
        if branch == state.current_branch:
            msg = 'Cannot remove the current branch.'
            raise CannotRemoveCurrentBranch(msg)

        del state.branches[branch]
        write_state(self.state_file(), state)

    @requires_repo
    def reset(self, commit_id: str) -> HashRef:
        """Move the current branch to a commit and check out all of its files.

        :param commit_id: A full or abbreviated commit id.
        :return: The fingerprint of the commit reset to.
        :raises NoSuchCommit: If the commit id does not resolve.
        :raises WouldOverwriteUntracked: If an untracked file would be overwritten."""
        commit_ref = self.resolve_commit_id(commit_id)
        state = self.read_state()

        self._replace_working_tree(self.load_commit(state.head), self.load_commit(commit_ref))
        state.move_current_branch(commit_ref)
        state.staging.discard(self.staging_dir())
        write_state(self.state_file(), state)

        return commit_ref

    @requires_repo
    def merge(self, branch: str) -> MergeResult:
        """Merge a branch into the current branch.

        Fast-forwards when the current tip is an ancestor of the branch.
        Otherwise every file is classified against the merge base; clean
        changes from the branch are checked out and staged, conflicting ones
        are written with conflict markers and staged, and a merge commit with
        both tips as parents is always created. Conflicts do not abort.

        :param branch: The name of the branch to merge in.
        :return: The merge result, listing any conflicted files.
        :raises NoSuchBranch: If the branch does not exist.
        :raises WouldOverwriteUntracked: If the merge would overwrite an untracked file.
        :raises UncommittedChangesPresentAtMerge: If anything is staged.
        :raises SelfMerge: If the branch is the current branch.
        :raises BranchIsAncestor: If the branch is already part of the current history."""
        state = self.read_state()
        if branch not in state.branches:
            msg = 'A branch with that name does not exist.'
            raise NoSuchBranch(msg)

        head_ref = state.head
        target_ref = state.branches[branch]
        head = self.load_commit(head_ref)
        target = self.load_commit(target_ref)

        in_the_way = [name for name in self.working_files()
                      if name in target.files and name not in head.files and name not in state.staging.added]
        if in_the_way:
            raise WouldOverwriteUntracked(in_the_way)
        if not state.staging.is_empty():
            msg = 'You have uncommitted changes.'
            raise UncommittedChangesPresentAtMerge(msg)
        if branch == state.current_branch:
            msg = 'Cannot merge a branch with itself.'
            raise SelfMerge(msg)
        if target_ref == head_ref or target_ref in head.ancestors:
            msg = 'Given branch is an ancestor of the current branch.'
            raise BranchIsAncestor(msg)

        base = select_merge_base(self.load_commit, head_ref, target_ref)
        if base.fast_forward:
            self._replace_working_tree(head, target)
            state.move_current_branch(target_ref)
            state.staging.discard(self.staging_dir())
            write_state(self.state_file(), state)
            return MergeResult(FAST_FORWARD, target_ref, base.commit_ref)

        conflicts: list[str] = []
        for action in plan_merge(self.load_commit(base.commit_ref), head, target):
            logger.debug('Merging %s: %s', branch, action)
            match action:
                case Take(name, blob_hash):
                    self._write_working_file(name, load_blob(self.objects_dir(), blob_hash))
                    self._stage_working_file(state, head, name)
                case Conflict(name, current_hash, target_hash):
                    text = conflict_text(self._blob_text(current_hash), self._blob_text(target_hash))
                    self._write_working_file(name, Blob.from_text(text))
                    self._stage_working_file(state, head, name)
                    conflicts.append(name)
                case Remove(name):
                    state.staging.mark_removed(name, self.staging_dir())
                    self._delete_working_file(name)

        message = f'Merged {branch} into {state.current_branch}.'
        merge_ref = self._create_commit(state, message, Merge(head_ref, target_ref))
        write_state(self.state_file(), state)

        return MergeResult(THREE_WAY, merge_ref, base.commit_ref, tuple(conflicts))

    @requires_repo
    def status(self) -> StatusReport:
        """Report branches, staged and removed files, unstaged modifications and untracked files."""
        state = self.read_state()
        return compute_status(state.branches, state.current_branch, self.load_commit(state.head), state.staging,
                              self._working_hashes(), lambda blob_hash: object_exists(self.objects_dir(), blob_hash))

    def _replace_working_tree(self, current: Commit, target: Commit) -> None:
        """Make the working directory hold ``target``'s files instead of ``current``'s.

        Checks every file first so that a refusal leaves the working directory untouched."""
        in_the_way = [name for name in self.working_files() if name in target.files and name not in current.files]
        if in_the_way:
            raise WouldOverwriteUntracked(in_the_way)

        for name in current.files:
            if name not in target.files:
                self._delete_working_file(name)
        for name, blob_hash in target.files.items():
            self._write_working_file(name, load_blob(self.objects_dir(), blob_hash))

    def _blob_text(self, blob_hash: HashRef | None) -> str:
        if blob_hash is None:
            return ''
        return load_blob(self.objects_dir(), blob_hash).text

    def _write_working_file(self, name: str, blob: Blob) -> None:
        write_file_blob(self.working_dir / name, blob)

    def _delete_working_file(self, name: str) -> None:
        try:
            (self.working_dir / name).unlink(missing_ok=True)
        except OSError as e:
            msg = f'Cannot delete {name} from the working directory'
            raise StorageError(msg) from e
