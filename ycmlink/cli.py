"""CLI for driving the completion daemon from the shell."""

import concurrent.futures
import logging
import sys
import time

import click
import structlog

from ycmlink.completion import CompletionClient
from ycmlink.config import load_settings
from ycmlink.editor import FileBuffer, FileEditor
from ycmlink.errors import ConfigError, PortNotFound, ProcessError, YcmError
from ycmlink.rpc import RpcSession


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


@click.group()
@click.option("--config", default=None, help="Path to ycmlink config YAML.")
@click.option("--verbose", is_flag=True, help="Log daemon output and requests.")
@click.pass_context
def main(ctx, config, verbose):
    """ycmlink: client for a local ycmd completion daemon."""
    _configure_logging(verbose)
    try:
        ctx.obj = load_settings(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.pass_obj
def start(settings):
    """Start the daemon and keep it running until interrupted."""
    session = _start_session(settings)
    click.echo(session.address.url)
    try:
        while session.server.is_running():
            time.sleep(0.5)
        click.echo("Error: daemon exited", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--line", default=1, type=click.IntRange(min=1), help="1-based line.")
@click.option("--column", default=1, type=click.IntRange(min=1), help="1-based column.")
@click.option("--timeout", default=30.0, help="Seconds to wait for completions.")
@click.pass_obj
def complete(settings, path, line, column, timeout):
    """Print completion candidates for PATH at the given position."""
    editor = FileEditor(FileBuffer.open(path), line, column)
    session = _start_session(settings)
    try:
        client = CompletionClient(session)
        _load_extra_conf(client, settings.extra_conf_path, timeout)
        parse = client.notify_file_ready_to_parse(editor)
        if parse is not None:
            concurrent.futures.wait([parse], timeout=timeout)
        future = client.request_completions(editor, on_error=lambda exc: None)
        candidates = _wait(future, timeout)
        for candidate in candidates:
            extra = candidate.extra_menu_info or candidate.kind or ""
            click.echo(f"{candidate.insertion_text}\t{extra}".rstrip())
    finally:
        session.stop()


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--timeout", default=30.0, help="Seconds to wait for the daemon.")
@click.pass_obj
def parse(settings, path, timeout):
    """Send a FileReadyToParse notification for PATH."""
    editor = FileEditor(FileBuffer.open(path))
    session = _start_session(settings)
    try:
        client = CompletionClient(session)
        future = client.notify_file_ready_to_parse(editor)
        if future is None:
            click.echo(f"Skipped: {path} is not in a completion-enabled mode")
            return
        _wait(future, timeout)
        click.echo("OK")
    finally:
        session.stop()


@main.command("load-extra-conf")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--timeout", default=30.0, help="Seconds to wait for the daemon.")
@click.pass_obj
def load_extra_conf(settings, path, timeout):
    """Ask the daemon to load an extra conf file."""
    session = _start_session(settings)
    try:
        client = CompletionClient(session)
        _load_extra_conf(client, path, timeout)
        click.echo("OK")
    finally:
        session.stop()


def _start_session(settings) -> RpcSession:
    session = RpcSession(settings)
    try:
        session.start()
    except (ConfigError, ProcessError, PortNotFound) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    return session


def _load_extra_conf(client: CompletionClient, path: str | None, timeout: float) -> None:
    if path:
        _wait(client.load_extra_config(path), timeout)


def _wait(future, timeout: float):
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        click.echo(f"Error: daemon did not answer within {timeout}s", err=True)
        sys.exit(2)
    except YcmError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
