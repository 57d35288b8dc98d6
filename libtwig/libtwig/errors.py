"""libtwig error types.

Every user-facing failure is a ``RepositoryError`` whose message is the text
shown to the user. Operations raise before mutating anything, so catching one
of these leaves the repository exactly as it was."""


class RepositoryError(Exception):
    """Exception raised for repository-related errors."""


class RepositoryNotFoundError(RepositoryError):
    """Exception raised when a repository is not found."""


class RepositoryExistsError(RepositoryError):
    """Exception raised when initializing over an existing repository."""


class StorageError(RepositoryError):
    """A persisted object could not be read or written."""


class NothingToCommit(RepositoryError):
    pass


class MissingCommitMessage(RepositoryError):
    pass


class NothingToRemove(RepositoryError):
    pass


class NoSuchFile(RepositoryError):
    pass


class NoSuchCommit(RepositoryError):
    pass


class AmbiguousCommitId(RepositoryError):
    pass


class NoSuchBranch(RepositoryError):
    pass


class DuplicateBranch(RepositoryError):
    pass


class CannotRemoveCurrentBranch(RepositoryError):
    pass


class AlreadyOnBranch(RepositoryError):
    pass


class FileNotInCommit(RepositoryError):
    pass


class WouldOverwriteUntracked(RepositoryError):
    """Raised when a checkout, reset or merge would clobber untracked files.

    Attributes:
        files: The untracked file names that are in the way.
    """

    def __init__(self, files: list[str]) -> None:
        self.files = sorted(files)
        super().__init__('There is an untracked file in the way; delete it, or add and commit it first.')


class UncommittedChangesPresentAtMerge(RepositoryError):
    pass


class SelfMerge(RepositoryError):
    pass


class BranchIsAncestor(RepositoryError):
    pass


class MergeError(RepositoryError):
    """Exception raised for merge-related errors."""
