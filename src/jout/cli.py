"""CLI commands for jout."""

from pathlib import Path

import click


@click.group()
@click.version_option()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/jout/config.toml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Emit debug logs on stderr")
@click.pass_context
def main(ctx, config_path: Path | None, verbose: bool) -> None:
    """Run commands, get JSON."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _load_config(ctx):
    """Load config for a command and configure logging; exit 1 if the file is unusable."""
    from jout import logging as jlog
    from jout.config import Config

    try:
        config = Config.load(ctx.obj["config_path"])
    except ValueError as e:
        jlog.config_invalid(str(e))
        raise SystemExit(1)

    jlog.configure(config, verbose=ctx.obj["verbose"])
    return config


@main.command("ps")
@click.option("--user", "user_filter", default="", help="Filter processes by user name")
@click.pass_context
def ps_command(ctx, user_filter: str) -> None:
    """List processes as a JSON array."""
    from jout import logging as jlog
    from jout.output import emit_json
    from jout.ps import CollectionError, collect_processes, filter_by_user

    config = _load_config(ctx)

    try:
        records = collect_processes(config)
    except CollectionError as e:
        jlog.collection_failed(str(e))
        jlog.external_stderr(e.stderr)
        raise SystemExit(e.exit_code if e.exit_code > 0 else 1)

    if user_filter:
        records = filter_by_user(records, user_filter)

    emit_json(records, indent=config.output.indent, ensure_ascii=config.output.ensure_ascii)


@main.command("ls")
@click.option(
    "-P",
    "no_follow",
    is_flag=True,
    help="List symbolic links themselves (default). Cancels -H and -L.",
)
@click.option("-H", "follow_args", is_flag=True, help="Follow symlinks named as arguments only.")
@click.option("-L", "follow_all", is_flag=True, help="Follow symlinks everywhere.")
@click.argument("paths", nargs=-1, type=click.Path())
@click.pass_context
def ls_command(ctx, no_follow: bool, follow_args: bool, follow_all: bool, paths) -> None:
    """List files and directories as a JSON array.

    Every PATH is listed even if an earlier one fails; the exit code is 1 when
    any of them could not be read.
    """
    from jout import logging as jlog
    from jout.ls import FollowMode, list_path
    from jout.output import emit_json

    config = _load_config(ctx)

    if no_follow:
        mode = FollowMode.NEVER
    elif follow_all:
        mode = FollowMode.ALL
    elif follow_args:
        mode = FollowMode.ARGUMENTS
    else:
        mode = FollowMode.NEVER

    entries = []
    exit_code = 0
    for path in paths or (".",):
        try:
            entries.extend(list_path(path, mode))
        except OSError as e:
            jlog.path_failed(path, e.strerror or str(e))
            exit_code = 1

    emit_json(entries, indent=config.output.indent, ensure_ascii=config.output.ensure_ascii)
    if exit_code:
        raise SystemExit(exit_code)


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx) -> None:
    """Display current configuration."""
    from jout import logging as jlog
    from jout.config import Config

    try:
        cfg = Config.load(ctx.obj["config_path"])
    except ValueError as e:
        jlog.config_invalid(str(e))
        raise SystemExit(1)

    path = ctx.obj["config_path"] or cfg.config_path
    click.echo(f"Config file: {path}")
    click.echo(f"Exists: {path.exists()}")
    click.echo()
    click.echo(cfg.to_toml().rstrip())


@config.command("edit")
@click.pass_context
def config_edit(ctx) -> None:
    """Open config file in editor."""
    import os
    import subprocess

    from jout import logging as jlog
    from jout.config import Config

    cfg = Config()
    path = ctx.obj["config_path"] or cfg.config_path

    # Create config if it doesn't exist
    if not path.exists():
        cfg.save(path)
        jlog.config_created(str(path))

    editor = os.environ.get("EDITOR", "nano")
    subprocess.run([editor, str(path)])


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
@click.pass_context
def config_reset(ctx) -> None:
    """Reset configuration to defaults."""
    from jout import logging as jlog
    from jout.config import Config

    cfg = Config()
    path = ctx.obj["config_path"] or cfg.config_path
    cfg.save(path)
    jlog.config_reset(str(path))
