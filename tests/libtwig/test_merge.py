from libtwig.constants import DEFAULT_BRANCH
from libtwig.errors import (BranchIsAncestor, MergeError, NoSuchBranch, SelfMerge, UncommittedChangesPresentAtMerge,
                            WouldOverwriteUntracked)
from libtwig.merge import (FAST_FORWARD, THREE_WAY, Conflict, Remove, Take, conflict_text, find_ancestor_in,
                           plan_merge, select_merge_base)
from libtwig.objects import Commit, HashRef, Merge, Normal, Root
from libtwig.plumbing import hash_string
from libtwig.repository import Repository
from pytest import raises


def _commit(lineage, ancestors=(), files=None) -> Commit:
    return Commit('Thu Jan 1 00:00:00 1970 +0000', 'test', lineage,
                  {name: HashRef(blob_hash) for name, blob_hash in (files or {}).items()},
                  tuple(HashRef(ancestor) for ancestor in ancestors))


def _criss_cross_graph() -> dict[str, Commit]:
    r"""Two branches that merged each other:

        r -- x1 -- x2
         \     \  /
          \     \/
           \    /\
            y1 -- y2
    """
    return {
        'r': _commit(Root()),
        'x1': _commit(Normal(HashRef('r')), ('r',)),
        'y1': _commit(Normal(HashRef('r')), ('r',)),
        'x2': _commit(Merge(HashRef('x1'), HashRef('y1')), ('r', 'x1', 'y1')),
        'y2': _commit(Merge(HashRef('y1'), HashRef('x1')), ('r', 'y1', 'x1')),
    }


def _write(repo: Repository, name: str, text: str) -> None:
    (repo.working_dir / name).write_text(text)


def _commit_files(repo: Repository, message: str, files: dict[str, str]) -> HashRef:
    for name, text in files.items():
        _write(repo, name, text)
        repo.add_file(name)
    return repo.commit(message)


def _read(repo: Repository, name: str) -> str:
    return (repo.working_dir / name).read_text()


def _diverge(repo: Repository, base: dict[str, str], ours: dict[str, str], theirs: dict[str, str],
             ours_removed: tuple[str, ...] = (), theirs_removed: tuple[str, ...] = ()) -> HashRef:
    """Commit ``base`` on master, then commit ``theirs`` on a new branch 'other' and ``ours`` on master."""
    base_ref = _commit_files(repo, 'Base', base)
    repo.add_branch('other')

    repo.checkout_branch('other')
    for name in theirs_removed:
        repo.rm(name)
    _commit_files(repo, 'Their change', theirs)

    repo.checkout_branch(DEFAULT_BRANCH)
    for name in ours_removed:
        repo.rm(name)
    _commit_files(repo, 'Our change', ours)

    return base_ref


def test_find_ancestor_in_prefers_first_parent() -> None:
    graph = _criss_cross_graph()

    assert find_ancestor_in(graph.__getitem__, HashRef('x2'), {'x1', 'y1'}) == 'x1'
    assert find_ancestor_in(graph.__getitem__, HashRef('y2'), {'x1', 'y1'}) == 'y1'
    assert find_ancestor_in(graph.__getitem__, HashRef('x1'), {'y1'}) is None


def test_select_merge_base_fork() -> None:
    graph = {
        'r': _commit(Root()),
        'base': _commit(Normal(HashRef('r')), ('r',)),
        'ours': _commit(Normal(HashRef('base')), ('r', 'base')),
        'theirs': _commit(Normal(HashRef('base')), ('r', 'base')),
    }

    merge_base = select_merge_base(graph.__getitem__, HashRef('ours'), HashRef('theirs'))

    assert merge_base.commit_ref == 'base'
    assert not merge_base.fast_forward


def test_select_merge_base_fast_forward() -> None:
    graph = {
        'r': _commit(Root()),
        'ours': _commit(Normal(HashRef('r')), ('r',)),
        'theirs': _commit(Normal(HashRef('ours')), ('r', 'ours')),
    }

    merge_base = select_merge_base(graph.__getitem__, HashRef('ours'), HashRef('theirs'))

    assert merge_base.commit_ref == 'ours'
    assert merge_base.fast_forward


def test_select_merge_base_fast_forward_from_root() -> None:
    graph = {
        'r': _commit(Root()),
        'theirs': _commit(Normal(HashRef('r')), ('r',)),
    }

    merge_base = select_merge_base(graph.__getitem__, HashRef('r'), HashRef('theirs'))

    assert merge_base.commit_ref == 'r'
    assert merge_base.fast_forward


def test_select_merge_base_criss_cross_picks_deeper_candidate() -> None:
    graph = _criss_cross_graph()

    # Searching from y2 finds y1, searching from x2 finds x1; y1 sits later in x2's ancestor list.
    merge_base = select_merge_base(graph.__getitem__, HashRef('x2'), HashRef('y2'))

    assert merge_base.commit_ref == 'y1'
    assert not merge_base.fast_forward


def test_select_merge_base_without_shared_history_raises_error() -> None:
    graph = {'r1': _commit(Root()), 'r2': _commit(Root())}

    with raises(MergeError):
        select_merge_base(graph.__getitem__, HashRef('r1'), HashRef('r2'))


def test_plan_merge_classifies_files() -> None:
    base = _commit(Root(), files={
        'kept.txt': 'k0', 'theirs_only.txt': 't0', 'ours_only.txt': 'o0', 'both.txt': 'b0', 'same.txt': 's0',
        'deleted_by_them.txt': 'd0', 'deleted_by_them_changed_by_us.txt': 'c0', 'deleted_by_us.txt': 'u0'})
    current = _commit(Root(), files={
        'kept.txt': 'k0', 'theirs_only.txt': 't0', 'ours_only.txt': 'o1', 'both.txt': 'b1', 'same.txt': 's1',
        'deleted_by_them.txt': 'd0', 'deleted_by_them_changed_by_us.txt': 'c1', 'added_by_both.txt': 'n1',
        'added_same.txt': 'a1'})
    target = _commit(Root(), files={
        'kept.txt': 'k0', 'theirs_only.txt': 't1', 'ours_only.txt': 'o0', 'both.txt': 'b2', 'same.txt': 's1',
        'deleted_by_us.txt': 'u1', 'added_by_both.txt': 'n2', 'added_same.txt': 'a1', 'new.txt': 'w1'})

    actions = plan_merge(base, current, target)

    assert actions == [
        Conflict('added_by_both.txt', HashRef('n1'), HashRef('n2')),
        Take('added_same.txt', HashRef('a1')),
        Conflict('both.txt', HashRef('b1'), HashRef('b2')),
        Conflict('deleted_by_us.txt', None, HashRef('u1')),
        Take('new.txt', HashRef('w1')),
        Take('theirs_only.txt', HashRef('t1')),
        Remove('deleted_by_them.txt'),
        Conflict('deleted_by_them_changed_by_us.txt', HashRef('c1'), None),
    ]


def test_conflict_text() -> None:
    assert conflict_text('2\n', '3\n') == '<<<<<<< HEAD\n2\n=======\n3\n>>>>>>>\n'
    assert conflict_text('2', '3') == '<<<<<<< HEAD\n2\n=======\n3\n>>>>>>>\n'
    assert conflict_text('mine\n', '') == '<<<<<<< HEAD\nmine\n=======\n>>>>>>>\n'
    assert conflict_text('', 'theirs\n') == '<<<<<<< HEAD\n=======\ntheirs\n>>>>>>>\n'


def test_merge_fast_forward(temp_repo: Repository) -> None:
    _commit_files(temp_repo, 'First', {'a.txt': 'a1\n'})
    temp_repo.add_branch('other')
    temp_repo.checkout_branch('other')
    other_tip = _commit_files(temp_repo, 'Second', {'a.txt': 'a2\n', 'b.txt': 'b\n'})
    temp_repo.checkout_branch(DEFAULT_BRANCH)
    commit_count = len(list(temp_repo.global_log()))

    result = temp_repo.merge('other')

    assert result.strategy == FAST_FORWARD
    assert result.commit == other_tip
    assert temp_repo.head_commit() == other_tip
    assert temp_repo.current_branch() == DEFAULT_BRANCH
    assert _read(temp_repo, 'a.txt') == 'a2\n'
    assert _read(temp_repo, 'b.txt') == 'b\n'
    assert len(list(temp_repo.global_log())) == commit_count


def test_merge_fast_forward_from_initial_commit(temp_repo: Repository) -> None:
    initial_ref = temp_repo.head_commit()
    temp_repo.add_branch('other')
    temp_repo.checkout_branch('other')
    other_tip = _commit_files(temp_repo, 'Only commit', {'a.txt': 'a\n'})
    temp_repo.checkout_branch(DEFAULT_BRANCH)

    result = temp_repo.merge('other')

    assert result.strategy == FAST_FORWARD
    assert result.base == initial_ref
    assert temp_repo.head_commit() == other_tip
    assert _read(temp_repo, 'a.txt') == 'a\n'


def test_merge_conflict(temp_repo: Repository) -> None:
    base_ref = _diverge(temp_repo, {'f': '1'}, {'f': '2'}, {'f': '3'})
    ours_ref = temp_repo.head_commit()
    theirs_ref = temp_repo.branches()['other']

    result = temp_repo.merge('other')

    expected = '<<<<<<< HEAD\n2\n=======\n3\n>>>>>>>\n'
    assert result.strategy == THREE_WAY
    assert result.base == base_ref
    assert result.conflicts == ('f',)
    assert result.has_conflicts
    assert _read(temp_repo, 'f') == expected

    merge_commit = temp_repo.load_commit(temp_repo.head_commit())
    assert result.commit == temp_repo.head_commit()
    assert merge_commit.lineage == Merge(ours_ref, theirs_ref)
    assert merge_commit.parents == (ours_ref, theirs_ref)
    assert merge_commit.message == 'Merged other into master.'
    assert merge_commit.files == {'f': hash_string(expected)}
    assert temp_repo.staging().is_empty()


def test_merge_applies_clean_changes(temp_repo: Repository) -> None:
    base_ref = _diverge(temp_repo,
                        base={'a.txt': 'a0\n', 'b.txt': 'b0\n', 'c.txt': 'c0\n'},
                        ours={'a.txt': 'a1\n'},
                        theirs={'b.txt': 'b1\n', 'd.txt': 'd1\n'},
                        theirs_removed=('c.txt',))

    result = temp_repo.merge('other')

    assert not result.has_conflicts
    assert result.base == base_ref
    assert _read(temp_repo, 'a.txt') == 'a1\n'
    assert _read(temp_repo, 'b.txt') == 'b1\n'
    assert _read(temp_repo, 'd.txt') == 'd1\n'
    assert not (temp_repo.working_dir / 'c.txt').exists()
    assert temp_repo.tracked_files() == {
        'a.txt': hash_string('a1\n'),
        'b.txt': hash_string('b1\n'),
        'd.txt': hash_string('d1\n'),
    }


def test_merge_conflict_when_target_deletes_changed_file(temp_repo: Repository) -> None:
    _diverge(temp_repo, base={'f.txt': 'base\n', 'g.txt': 'g\n'}, ours={'f.txt': 'mine\n'},
             theirs={'g.txt': 'g2\n'}, theirs_removed=('f.txt',))

    result = temp_repo.merge('other')

    assert result.conflicts == ('f.txt',)
    assert _read(temp_repo, 'f.txt') == '<<<<<<< HEAD\nmine\n=======\n>>>>>>>\n'
    assert _read(temp_repo, 'g.txt') == 'g2\n'


def test_merge_conflict_when_current_deleted_file_target_changed(temp_repo: Repository) -> None:
    _diverge(temp_repo, base={'f.txt': 'base\n', 'g.txt': 'g\n'}, ours={'g.txt': 'g2\n'},
             theirs={'f.txt': 'theirs\n'}, ours_removed=('f.txt',))

    result = temp_repo.merge('other')

    assert result.conflicts == ('f.txt',)
    assert _read(temp_repo, 'f.txt') == '<<<<<<< HEAD\n=======\ntheirs\n>>>>>>>\n'
    assert 'f.txt' in temp_repo.tracked_files()


def test_merge_files_added_on_both_sides(temp_repo: Repository) -> None:
    _diverge(temp_repo, base={'base.txt': 'base\n'},
             ours={'same.txt': 'same\n', 'diff.txt': 'ours\n'},
             theirs={'same.txt': 'same\n', 'diff.txt': 'theirs\n'})

    result = temp_repo.merge('other')

    assert result.conflicts == ('diff.txt',)
    assert _read(temp_repo, 'same.txt') == 'same\n'
    assert _read(temp_repo, 'diff.txt') == '<<<<<<< HEAD\nours\n=======\ntheirs\n>>>>>>>\n'


def test_merge_both_sides_made_same_change(temp_repo: Repository) -> None:
    _diverge(temp_repo, base={'f.txt': 'old\n', 'g.txt': 'g\n'},
             ours={'f.txt': 'new\n'},
             theirs={'f.txt': 'new\n', 'h.txt': 'h\n'})
    ours_ref = temp_repo.head_commit()

    result = temp_repo.merge('other')

    assert not result.has_conflicts
    assert _read(temp_repo, 'f.txt') == 'new\n'
    assert temp_repo.load_commit(result.commit).parent == ours_ref


def test_merge_commit_created_when_nothing_is_staged(temp_repo: Repository) -> None:
    _diverge(temp_repo, base={'f.txt': 'old\n'}, ours={'f.txt': 'new\n'}, theirs={'f.txt': 'new\n'})
    ours_ref = temp_repo.head_commit()

    result = temp_repo.merge('other')

    merge_commit = temp_repo.load_commit(result.commit)
    assert merge_commit.parents == (ours_ref, temp_repo.branches()['other'])
    assert merge_commit.files == temp_repo.load_commit(ours_ref).files


def test_merge_after_earlier_merges(temp_repo: Repository) -> None:
    _diverge(temp_repo, base={'f.txt': 'f0\n', 'g.txt': 'g0\n'}, ours={'f.txt': 'f1\n'}, theirs={'g.txt': 'g1\n'})
    temp_repo.merge('other')
    temp_repo.checkout_branch('other')
    temp_repo.merge(DEFAULT_BRANCH)
    _commit_files(temp_repo, 'Other again', {'h.txt': 'h\n'})
    temp_repo.checkout_branch(DEFAULT_BRANCH)
    _commit_files(temp_repo, 'Master again', {'f.txt': 'f2\n'})

    result = temp_repo.merge('other')

    assert not result.has_conflicts
    assert _read(temp_repo, 'f.txt') == 'f2\n'
    assert _read(temp_repo, 'g.txt') == 'g1\n'
    assert _read(temp_repo, 'h.txt') == 'h\n'


def test_merge_with_staged_changes_raises_error(temp_repo: Repository) -> None:
    _diverge(temp_repo, {'f': '1'}, {'f': '2'}, {'f': '3'})
    _write(temp_repo, 'staged.txt', 'staged\n')
    temp_repo.add_file('staged.txt')
    head = temp_repo.head_commit()

    with raises(UncommittedChangesPresentAtMerge, match='You have uncommitted changes.'):
        temp_repo.merge('other')

    assert temp_repo.head_commit() == head
    assert _read(temp_repo, 'f') == '2'


def test_merge_nonexistent_branch_raises_error(temp_repo: Repository) -> None:
    with raises(NoSuchBranch, match='A branch with that name does not exist.'):
        temp_repo.merge('nonexistent_branch')


def test_merge_with_itself_raises_error(temp_repo: Repository) -> None:
    with raises(SelfMerge, match='Cannot merge a branch with itself.'):
        temp_repo.merge(DEFAULT_BRANCH)


def test_merge_ancestor_branch_raises_error(temp_repo: Repository) -> None:
    _commit_files(temp_repo, 'First', {'a.txt': 'a1\n'})
    temp_repo.add_branch('old')
    head = _commit_files(temp_repo, 'Second', {'a.txt': 'a2\n'})

    with raises(BranchIsAncestor, match='Given branch is an ancestor of the current branch.'):
        temp_repo.merge('old')

    assert temp_repo.head_commit() == head


def test_merge_refuses_to_overwrite_untracked_file(temp_repo: Repository) -> None:
    _diverge(temp_repo, {'f': '1'}, {'f': '2'}, {'u.txt': 'theirs\n'})
    _write(temp_repo, 'u.txt', 'mine\n')
    head = temp_repo.head_commit()

    with raises(WouldOverwriteUntracked):
        temp_repo.merge('other')

    assert temp_repo.head_commit() == head
    assert _read(temp_repo, 'u.txt') == 'mine\n'
    assert _read(temp_repo, 'f') == '2'
