"""CLI interface for imageward"""

import logging
import sys
import warnings

import click

from imageward.core.actions import Action
from imageward.core.auth import AuthStore
from imageward.core.config import Config
from imageward.core.errors import ImageWardError
from imageward.core.orchestrator import Converger
from imageward.core.retry import RetryPolicy
from imageward.core.spec import DEFAULT_READ_TIMEOUT, ImageSpec

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode with verbose output and warnings",
)
@click.version_option(package_name="imageward")
@click.pass_context
def cli(ctx, debug):
    """imageward - container image lifecycle tool

    Build, pull, push, import, save, load and remove images so that the
    engine matches a declared state.
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        # Suppress deprecation warnings in production mode
        warnings.filterwarnings("ignore", category=DeprecationWarning)


@cli.command()
@click.option(
    "-c",
    "--config",
    required=True,
    type=click.Path(exists=True),
    help="Path to configuration YAML file",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable verbose logging",
)
@click.option(
    "-e",
    "--env-file",
    multiple=True,
    type=click.Path(exists=True),
    help="Load environment variables from file (can be used multiple times)",
)
@click.option(
    "--max-workers",
    type=int,
    default=None,
    help="Images converged concurrently (1-10, default from config)",
)
@click.pass_context
def converge(ctx, config: str, verbose: bool, env_file: tuple, max_workers):
    """Converge every image declared in a configuration file

    Examples:
        imageward converge -c images.yaml
        imageward converge -c images.yaml -e .env.registry --max-workers 4
    """
    if verbose or ctx.obj.get("debug"):
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        env_files = list(env_file) if env_file else None

        cfg = Config(config, env_files=env_files)
        if not cfg.validate():
            click.echo("✗ Configuration validation failed")
            for error in cfg.errors:
                click.echo(f"  - {error}")
            sys.exit(1)

        outcomes = Converger.from_config(cfg, max_workers=max_workers).run()

        for outcome in outcomes:
            if not outcome.ok:
                click.echo(f"✗ {outcome.action.value} {outcome.spec.identifier}: {outcome.error}")
            elif outcome.changed:
                click.echo(f"✓ {outcome.result.description}")
            else:
                click.echo(f"- {outcome.spec.identifier}: {outcome.result.description}")

        if outcomes and all(o.ok for o in outcomes) and len(outcomes) == len(cfg.resources):
            changed = sum(1 for o in outcomes if o.changed)
            click.echo(f"\n✓ Converged {len(outcomes)} image(s), {changed} changed")
            sys.exit(0)

        click.echo("\n✗ Converge failed")
        sys.exit(1)

    except (ImageWardError, OSError, ValueError) as e:
        click.echo(f"\n✗ Error: {e}")
        if verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


@cli.command()
@click.option(
    "-c",
    "--config",
    required=True,
    type=click.Path(exists=True),
    help="Path to configuration YAML file",
)
@click.option(
    "-e",
    "--env-file",
    multiple=True,
    type=click.Path(exists=True),
    help="Load environment variables from file (can be used multiple times)",
)
def validate(config: str, env_file: tuple):
    """Validate configuration file

    Examples:
        imageward validate -c images.yaml
        imageward validate -c images.yaml -e .env.registry
    """
    try:
        env_files = list(env_file) if env_file else None

        cfg = Config(config, env_files=env_files)

        if not cfg.validate():
            click.echo("✗ Configuration validation failed")
            for error in cfg.errors:
                click.echo(f"  - {error}")
            sys.exit(1)

        click.echo("✓ Configuration is valid")
        click.echo(f"  Images: {len(cfg.resources)}")
        click.echo(f"  Registries with credentials: {len(cfg.auth)}")
        for action, spec in cfg.resources:
            click.echo(f"    - {action.value} {spec.identifier}")

        sys.exit(0)

    except (ImageWardError, OSError, ValueError) as e:
        click.echo(f"✗ Error: {e}")
        sys.exit(1)


@cli.command()
@click.argument("action", type=click.Choice([a.value for a in Action]))
@click.argument("repo")
@click.option("-t", "--tag", default="latest", show_default=True, help="Image tag")
@click.option("-s", "--source", help="Build context, Dockerfile, import source or archive to load")
@click.option("-d", "--destination", help="Archive path written by save")
@click.option("-H", "--host", help="Engine endpoint (default: DOCKER_HOST)")
@click.option("--force", is_flag=True, help="Force tagging and removal")
@click.option("--nocache", is_flag=True, help="Build without cache")
@click.option("--noprune", is_flag=True, help="Keep untagged parents when removing")
@click.option("--no-rm", is_flag=True, help="Keep intermediate build containers")
@click.option(
    "--read-timeout",
    type=int,
    default=DEFAULT_READ_TIMEOUT,
    show_default=True,
    help="Seconds to wait on the engine per call",
)
@click.option(
    "--retries",
    type=int,
    default=3,
    show_default=True,
    help="Attempts per engine operation",
)
def run(action: str, repo: str, tag: str, source, destination, host, force: bool, nocache: bool,
        noprune: bool, no_rm: bool, read_timeout: int, retries: int):
    """Run a single action on one image

    Credentials come from the engine's own configuration.

    Examples:
        imageward run pull nginx -t 1.25
        imageward run build app -t v1 -s ./app
        imageward run save app -t v1 -d app.tar
    """
    try:
        spec = ImageSpec(
            repo,
            tag=tag,
            source=source,
            destination=destination,
            force=force,
            nocache=nocache,
            noprune=noprune,
            rm=not no_rm,
            read_timeout=read_timeout,
            host=host,
        )
        converger = Converger(
            [(Action.parse(action), spec)],
            auth=AuthStore(),
            retry_policy=RetryPolicy(max_attempts=max(1, retries)),
        )
        outcome = converger.run()[0]

        if not outcome.ok:
            click.echo(f"✗ Error: {outcome.error}")
            sys.exit(1)

        if outcome.changed:
            click.echo(f"✓ {outcome.result.description}")
        else:
            click.echo(f"- {spec.identifier}: {outcome.result.description}")
        sys.exit(0)

    except (ImageWardError, ValueError) as e:
        click.echo(f"✗ Error: {e}")
        sys.exit(1)


def main():
    """Entry point for CLI"""
    cli()


if __name__ == "__main__":
    main()
