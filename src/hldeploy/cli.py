import logging

import click
from rich.logging import RichHandler

from .core import Deployer
from .errors import InputValidationError
from .services.validation import parse_env_assignments

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _configure_logging(verbose: bool, log_file):
    logger = logging.getLogger("hldeploy")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)


@click.group()
@click.option(
    "--root",
    envvar="HL_ROOT",
    type=click.Path(file_okay=False),
    help="Directory holding one folder per app (default: ~/prj/apps, or $HL_ROOT).",
)
@click.option(
    "--lock-dir",
    envvar="HL_LOCK_DIR",
    type=click.Path(file_okay=False),
    help="Directory for per-app deploy lock files.",
)
@click.option("--verbose", is_flag=True, default=False, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.pass_context
def main(ctx, root, lock_dir, verbose, log_file):
    """Build, migrate, promote and restart apps on this host."""
    _configure_logging(verbose, log_file)
    ctx.obj = {"root": root, "lock_dir": lock_dir}


def _deployer(ctx) -> Deployer:
    return Deployer(root=ctx.obj["root"], lock_dir=ctx.obj["lock_dir"])


@main.command()
@click.option("--app", required=True, help="Application name")
@click.option("--sha", required=True, help="Git commit SHA")
@click.option("--branch", default="master", show_default=True, help="Git branch name")
@click.option("--context", default=".", show_default=True, help="Build context directory")
@click.option("--dockerfile", required=False, help="Dockerfile path (default: <context>/Dockerfile)")
@click.option(
    "--git-dir",
    required=False,
    type=click.Path(),
    help="Bare repository to export the commit from; overrides --context.",
)
@click.option(
    "--env",
    "env_pairs",
    multiple=True,
    metavar="KEY=VALUE",
    help="Extra environment for the migration container. Repeatable.",
)
@click.pass_context
def deploy(ctx, app, sha, branch, context, dockerfile, git_dir, env_pairs):
    """Build -> push -> migrate -> retag -> restart -> health."""
    try:
        migration_env = parse_env_assignments(env_pairs)
    except InputValidationError as exc:
        raise click.BadParameter(str(exc), param_hint="--env") from exc

    outcome = _deployer(ctx).deploy(
        app=app,
        commit_ref=sha,
        branch=branch,
        context=context,
        dockerfile=dockerfile,
        git_dir=git_dir,
        migration_env=migration_env,
    )
    raise SystemExit(outcome.exit_code)


@main.command()
@click.argument("app")
@click.argument("sha")
@click.pass_context
def rollback(ctx, app, sha):
    """Promote a previously built SHA to latest and restart."""
    outcome = _deployer(ctx).rollback(app=app, target_ref=sha)
    raise SystemExit(outcome.exit_code)


if __name__ == "__main__":
    main()
