from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from itertools import count
from pathlib import Path

from libtwig.repository import Repository
from pytest import fixture

PST = timezone(timedelta(hours=-8))


@fixture
def clock() -> Callable[[], datetime]:
    """A clock that ticks one second per commit, starting at Thu Nov 9 20:00:05 2017 -0800."""
    start = datetime(2017, 11, 9, 20, 0, 5, tzinfo=PST)
    ticks = count()
    return lambda: start + timedelta(seconds=next(ticks))


@fixture
def temp_repo_dir(tmp_path: Path) -> Path:
    working_dir = tmp_path / 'work'
    working_dir.mkdir()
    return working_dir


@fixture
def temp_repo(temp_repo_dir: Path, clock: Callable[[], datetime]) -> Repository:
    repo = Repository(temp_repo_dir, clock=clock)
    repo.init()
    return repo
