"""Constants shared across libtwig."""

from datetime import UTC, datetime

DEFAULT_REPO_DIR = '.twig'
DEFAULT_BRANCH = 'master'

OBJECTS_SUBDIR = 'objects'
COMMITS_SUBDIR = 'commits'
STAGING_SUBDIR = 'staging'
STATE_FILE = 'state'

HASH_LENGTH = 40
HASH_CHARSET = '0123456789abcdef'
SHORT_HASH_LENGTH = 8
MIN_ABBREV_LENGTH = 4

INITIAL_COMMIT_MESSAGE = 'initial commit'
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

CONFLICT_START = '<<<<<<< HEAD\n'
CONFLICT_SEPARATOR = '=======\n'
CONFLICT_END = '>>>>>>>\n'
