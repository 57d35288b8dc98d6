"""Content-addressed storage for blobs and commits."""

import hashlib
import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from .constants import HASH_CHARSET, HASH_LENGTH
from .errors import StorageError
from .objects import ENCODING, ENCODING_ERRORS, Blob, Commit, HashRef

logger = logging.getLogger(__name__)


def hash_bytes(data: bytes) -> HashRef:
    return HashRef(hashlib.sha1(data).hexdigest())


def hash_string(text: str) -> HashRef:
    """Fingerprint text content. Equal texts always hash equal; distinct texts hash distinct."""
    return hash_bytes(text.encode(ENCODING, ENCODING_ERRORS))


def encode_commit(commit: Commit) -> bytes:
    """Canonical encoding of a commit: key order never depends on insertion order."""
    return json.dumps(commit.to_dict(), sort_keys=True, separators=(',', ':')).encode(ENCODING)


def hash_object(obj: Blob | Commit) -> HashRef:
    match obj:
        case Blob():
            return hash_string(obj.text)
        case Commit():
            return hash_bytes(encode_commit(obj))
        case _:
            msg = f'Cannot hash object of type {type(obj)}'
            raise TypeError(msg)


def is_hash(value: str) -> bool:
    return len(value) == HASH_LENGTH and all(c in HASH_CHARSET for c in value)


def get_content_path(objects_dir: str | Path, content_hash: str) -> Path:
    """Objects are sharded by the first two characters of their hash."""
    return Path(objects_dir) / content_hash[:2] / content_hash


def open_content_for_reading(objects_dir: str | Path, content_hash: str) -> BinaryIO:
    return get_content_path(objects_dir, content_hash).open('rb')


def open_content_for_writing(objects_dir: str | Path, content_hash: str) -> BinaryIO:
    path = get_content_path(objects_dir, content_hash)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path.open('wb')


def object_exists(objects_dir: str | Path, content_hash: str) -> bool:
    return get_content_path(objects_dir, content_hash).is_file()


def store(objects_dir: str | Path, content: bytes) -> HashRef:
    """Persist content keyed by its fingerprint. Storing the same content twice is a no-op."""
    content_hash = hash_object(Blob(content))
    if object_exists(objects_dir, content_hash):
        return content_hash

    try:
        with open_content_for_writing(objects_dir, content_hash) as handle:
            handle.write(content)
    except OSError as e:
        msg = f'Error saving object {content_hash}'
        raise StorageError(msg) from e

    logger.debug('Stored object %s (%d bytes)', content_hash, len(content))
    return content_hash


def load(objects_dir: str | Path, content_hash: str) -> bytes:
    try:
        with open_content_for_reading(objects_dir, content_hash) as handle:
            return handle.read()
    except OSError as e:
        msg = f'Error reading object {content_hash}'
        raise StorageError(msg) from e


def save_blob(objects_dir: str | Path, blob: Blob) -> HashRef:
    return store(objects_dir, blob.content)


def load_blob(objects_dir: str | Path, blob_hash: str) -> Blob:
    return Blob(load(objects_dir, blob_hash))


def read_file_blob(file: Path) -> Blob:
    """Snapshot a working directory file.

    :param file: The path to the file to read.
    :return: A Blob holding the file's current bytes.
    :raises StorageError: If the file cannot be read."""
    try:
        return Blob(file.read_bytes())
    except OSError as e:
        msg = f'Error reading file {file}'
        raise StorageError(msg) from e


def write_file_blob(file: Path, blob: Blob) -> None:
    try:
        file.write_bytes(blob.content)
    except OSError as e:
        msg = f'Error writing file {file}'
        raise StorageError(msg) from e


def save_commit(commits_dir: str | Path, commit: Commit) -> HashRef:
    """Persist a commit keyed by its own fingerprint."""
    data = encode_commit(commit)
    commit_hash = hash_bytes(data)
    try:
        with open_content_for_writing(commits_dir, commit_hash) as handle:
            handle.write(data)
    except OSError as e:
        msg = f'Error saving commit {commit_hash}'
        raise StorageError(msg) from e

    logger.debug('Saved commit %s (%r)', commit_hash, commit.message)
    return commit_hash


def load_commit(commits_dir: str | Path, commit_hash: str) -> Commit:
    try:
        with open_content_for_reading(commits_dir, commit_hash) as handle:
            return Commit.from_dict(json.loads(handle.read().decode(ENCODING)))
    except (OSError, ValueError, KeyError, TypeError) as e:
        msg = f'Error loading commit {commit_hash}'
        raise StorageError(msg) from e


def iter_object_hashes(objects_dir: str | Path) -> Iterator[HashRef]:
    """Yield the hash of every object in a store, in sorted order."""
    objects_dir = Path(objects_dir)
    if not objects_dir.is_dir():
        return

    for shard in sorted(objects_dir.iterdir()):
        if not shard.is_dir():
            continue
        for item in sorted(shard.iterdir()):
            if item.is_file() and is_hash(item.name):
                yield HashRef(item.name)
