"""CLI interface for httpchain"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import click
import yaml

from httpchain.application.client import HttpClient
from httpchain.domain.config.app import ClientConfig
from httpchain.domain.errors import HttpChainError
from httpchain.domain.models.attempt import Attempt
from httpchain.infrastructure.config.config_manager import ConfigManager, ConfigurationError
from httpchain.infrastructure.transport.logging_handler import default_dump_log

logger = logging.getLogger(__name__)

_MISSING = object()


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    logging.getLogger().setLevel(level)
    for logger_name in logging.Logger.manager.loggerDict:
        logging.getLogger(logger_name).setLevel(level)


def _die(message: str, verbose: bool = False, exc: Optional[Exception] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def parse_headers(values: Tuple[str, ...]) -> Dict[str, str]:
    """Parse repeated ``Name: value`` options into a dict

    Raises:
        click.BadParameter: If a value has no colon or an empty name
    """
    headers: Dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected 'Name: value', got {raw!r}", param_hint="--header")
        headers[name.strip()] = value.strip()
    return headers


def _load_config(
    config_path: Optional[Path],
    dns_servers: Tuple[str, ...],
    max_attempts: Optional[int],
    timeout: Optional[float],
    dump: bool,
) -> ClientConfig:
    """Load config file/env and apply CLI overrides

    Returns:
        Validated client configuration

    Raises:
        ConfigurationError: If the resulting configuration is invalid
    """
    manager = ConfigManager(config_path=config_path)
    overrides = {}
    if dns_servers:
        overrides["dns"] = {**manager.get_dns_config().model_dump(), "servers": list(dns_servers)}
    if max_attempts is not None:
        overrides["retry"] = {**manager.get_retry_policy().model_dump(), "max_attempts": max_attempts}
    if timeout is not None:
        overrides["timeout"] = timeout
    if dump:
        overrides["logging"] = {**manager.get_logging_config().model_dump(), "dump_requests": True}
    if not overrides:
        return manager.config
    try:
        return ClientConfig(**{**manager.config.model_dump(), **overrides})
    except ValueError as e:
        raise ConfigurationError(f"Invalid command line option: {e}") from e


def _report_retry(attempt: Attempt) -> None:
    click.echo(f"Retry {attempt.index + 1}: {attempt.describe()} (waiting {attempt.delay:.2f}s)", err=True)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .httpchain.yml config file",
)
@click.pass_context
def cli(ctx, verbose: bool, config: Path):
    """httpchain - resilient HTTP client"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("method", type=str)
@click.argument("url", type=str)
@click.option("--header", "-H", "headers", multiple=True, help="Request header 'Name: value' (repeatable)")
@click.option("--data", "-d", type=str, help="Raw request body")
@click.option("--json", "json_body", type=str, help="JSON request body (validated before sending)")
@click.option("--dns-server", "dns_servers", multiple=True, help="Custom DNS server ip[:port] (repeatable)")
@click.option("--max-attempts", type=click.IntRange(min=0), help="Maximum retry attempts. Overrides config.")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Request deadline in seconds")
@click.option("--dump", is_flag=True, help="Dump each outgoing request")
@click.option("--include", "-i", is_flag=True, help="Print status line and response headers")
@click.pass_context
def request(
    ctx,
    method: str,
    url: str,
    headers: Tuple[str, ...],
    data: Optional[str],
    json_body: Optional[str],
    dns_servers: Tuple[str, ...],
    max_attempts: Optional[int],
    timeout: Optional[float],
    dump: bool,
    include: bool,
):
    """Send a single HTTP request.

    METHOD: HTTP method (GET, POST, ...)
    URL: Absolute URL to request
    """
    verbose = ctx.obj.get("verbose", False)
    if data is not None and json_body is not None:
        raise click.UsageError("--data and --json are mutually exclusive")

    payload = None
    if json_body is not None:
        try:
            payload = json.loads(json_body)
        except ValueError as e:
            raise click.BadParameter(f"invalid JSON: {e}", param_hint="--json")

    parsed_headers = parse_headers(headers)

    try:
        config = _load_config(ctx.obj.get("config_path"), dns_servers, max_attempts, timeout, dump)
    except ConfigurationError as e:
        _die(str(e), verbose=verbose, exc=e)

    dump_log = default_dump_log() if dump else None
    try:
        with HttpClient(config, dump_log=dump_log, on_retry=_report_retry) as client:
            response = client.request(method, url, headers=parsed_headers, data=data, json=payload)
            try:
                if include:
                    click.echo(f"HTTP {response.status_code} {response.reason or ''}".rstrip())
                    for name, value in response.headers.items():
                        click.echo(f"{name}: {value}")
                    click.echo("")
                click.echo(response.text)
            finally:
                response.close()
    except HttpChainError as e:
        _die(f"Request failed: {e}", verbose=verbose, exc=e)

    if response.status_code >= 400:
        raise click.exceptions.Exit(1)


@cli.command("config")
@click.argument("key", required=False)
@click.pass_context
def show_config(ctx, key: Optional[str]):
    """Print the effective configuration as YAML.

    KEY: Optional dotted key to print a single value (e.g. retry.max_attempts)
    """
    verbose = ctx.obj.get("verbose", False)
    try:
        manager = ConfigManager(config_path=ctx.obj.get("config_path"))
    except ConfigurationError as e:
        _die(str(e), verbose=verbose, exc=e)

    if key is None:
        data = manager.as_dict()
    else:
        data = manager.get(key, _MISSING)
        if data is _MISSING:
            _die(f"Unknown configuration key: {key}", verbose=verbose)
    click.echo(yaml.safe_dump(data, sort_keys=False))


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
