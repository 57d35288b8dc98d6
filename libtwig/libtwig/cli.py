"""The ``twig`` command line."""

import logging
from pathlib import Path

import click

from .constants import DEFAULT_REPO_DIR
from .errors import RepositoryError
from .merge import FAST_FORWARD
from .objects import format_log_entry
from .repository import Repository
from .status import format_status

INCORRECT_OPERANDS = 'Incorrect operands.'


class TwigGroup(click.Group):
    """Reports repository errors as a message and a successful exit."""

    def invoke(self, ctx: click.Context) -> object:
        try:
            return super().invoke(ctx)
        except RepositoryError as e:
            click.echo(str(e))
            ctx.exit(0)


class RawArgsCommand(click.Command):
    """Keeps the unparsed arguments, since the parser swallows ``--``."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        ctx.meta['raw_args'] = list(args)
        return super().parse_args(ctx, args)


@click.group(cls=TwigGroup, invoke_without_command=True)
@click.option('-C', '--working-dir', envvar='TWIG_WORKING_DIR', default='.',
              type=click.Path(file_okay=False, path_type=Path), help='Directory holding the tracked files.')
@click.option('--repo-dir', envvar='TWIG_REPO_DIR', default=DEFAULT_REPO_DIR, show_default=True,
              help='Name of the repository directory inside the working directory.')
@click.option('-v', '--verbose', is_flag=True, help='Log debug output to stderr.')
@click.pass_context
def main(ctx: click.Context, working_dir: Path, repo_dir: str, verbose: bool) -> None:
    """A tiny local version-control system."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')
    ctx.obj = Repository(working_dir, repo_dir)

    if ctx.invoked_subcommand is None:
        click.echo('Please enter a command.')


@main.command()
@click.pass_obj
def init(repo: Repository) -> None:
    """Create a repository with one initial commit."""
    repo.init()


@main.command()
@click.argument('file')
@click.pass_obj
def add(repo: Repository, file: str) -> None:
    """Stage FILE for the next commit."""
    repo.add_file(file)


@main.command()
@click.argument('message', default='')
@click.pass_obj
def commit(repo: Repository, message: str) -> None:
    """Commit the staged changes."""
    repo.commit(message)


@main.command()
@click.argument('file')
@click.pass_obj
def rm(repo: Repository, file: str) -> None:
    """Unstage FILE, or stage it for removal."""
    repo.rm(file)


@main.command()
@click.pass_obj
def log(repo: Repository) -> None:
    """Show the history of the current branch."""
    for entry in repo.log():
        click.echo(format_log_entry(entry), nl=False)


@main.command('global-log')
@click.pass_obj
def global_log(repo: Repository) -> None:
    """Show every commit ever made."""
    for entry in repo.global_log():
        click.echo(format_log_entry(entry), nl=False)


@main.command()
@click.argument('message')
@click.pass_obj
def find(repo: Repository, message: str) -> None:
    """Print the ids of all commits with exactly MESSAGE."""
    for commit_ref in repo.find(message):
        click.echo(commit_ref)


@main.command()
@click.pass_obj
def status(repo: Repository) -> None:
    """Show branches, staged files and working directory changes."""
    click.echo(format_status(repo.status()), nl=False)


@main.command(cls=RawArgsCommand, context_settings={'ignore_unknown_options': True})
@click.argument('operands', nargs=-1)
@click.pass_context
def checkout(ctx: click.Context, operands: tuple[str, ...]) -> None:
    """Check out a branch, or a file from the head or a given commit.

    \b
    twig checkout BRANCH
    twig checkout -- FILE
    twig checkout COMMIT -- FILE
    """
    repo: Repository = ctx.obj
    match ctx.meta['raw_args']:
        case [branch] if branch != '--':
            repo.checkout_branch(branch)
        case ['--', file]:
            repo.checkout_file(file)
        case [commit_id, '--', file]:
            repo.checkout_file(file, commit_id)
        case _:
            click.echo(INCORRECT_OPERANDS)


@main.command()
@click.argument('name')
@click.pass_obj
def branch(repo: Repository, name: str) -> None:
    """Create a branch NAME at the head commit."""
    repo.add_branch(name)


@main.command('rm-branch')
@click.argument('name')
@click.pass_obj
def rm_branch(repo: Repository, name: str) -> None:
    """Delete the branch NAME."""
    repo.delete_branch(name)


@main.command()
@click.argument('commit_id')
@click.pass_obj
def reset(repo: Repository, commit_id: str) -> None:
    """Move the current branch to COMMIT_ID and check out its files."""
    repo.reset(commit_id)


@main.command()
@click.argument('name')
@click.pass_obj
def merge(repo: Repository, name: str) -> None:
    """Merge branch NAME into the current branch."""
    result = repo.merge(name)
    if result.strategy == FAST_FORWARD:
        click.echo('Current branch fast-forwarded.')
    elif result.has_conflicts:
        click.echo('Encountered a merge conflict.')
