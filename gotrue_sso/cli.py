"""CLI interface for gotrue-sso using Click."""

import functools
import json
import logging
import sys
from typing import Any, Dict, Optional, Tuple

import click
import requests

from . import __version__
from .ensure import error_diagnostics, ensure_absent, ensure_present
from .exceptions import AdminClientError
from .provider import URL_ENV_VAR, ProviderConfig, configure
from .report import print_diagnostics
from .resource import IdentityProviderReconciler, SAMLIdentityProvider, validate_record
from .validators import Diagnostic, has_errors


def _print_error(message: str):
    """Print a fatal error with color."""
    click.secho(f"❌ {message}", fg="red", err=True)


def _load_record(file: Optional[str], stdin: bool) -> SAMLIdentityProvider:
    """Read a provider definition from a JSON file or stdin, exiting on bad input."""
    try:
        if stdin:
            data = json.loads(sys.stdin.read())
        elif file:
            with open(file, "r") as f:
                data = json.load(f)
        else:
            click.echo(click.get_current_context().get_help())
            sys.exit(1)
    except FileNotFoundError:
        _print_error(f"File not found: {file}")
        sys.exit(1)
    except json.JSONDecodeError as e:
        _print_error(f"Invalid JSON: {e}")
        sys.exit(1)

    if not isinstance(data, dict):
        _print_error("Provider definition must be a JSON object")
        sys.exit(1)
    return SAMLIdentityProvider.from_dict(data)


def _parse_headers(values: Tuple[str, ...], token: Optional[str]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected 'Name: value', got {value!r}", param_hint="--header")
        headers[name.strip()] = content.strip()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def connection_options(func):
    """Options shared by every command that talks to a GoTrue server."""
    @click.option("--url", envvar=URL_ENV_VAR, required=True, help=f"GoTrue base URL (env: {URL_ENV_VAR})")
    @click.option("--token", envvar="GOTRUE_TOKEN", help="Bearer token, usually the service role key (env: GOTRUE_TOKEN)")
    @click.option("--header", "headers", multiple=True, help="Extra request header as 'Name: value' (repeatable)")
    @click.option("--timeout", type=float, default=30, show_default=True, help="Per-request timeout in seconds")
    @click.option("--tls-no-verify", is_flag=True, help="Skip TLS certificate verification")
    @click.option("--ca-bundle", type=click.Path(exists=True, dir_okay=False), help="Custom CA bundle file")
    @click.option("--proxy", help="HTTP/HTTPS proxy URL")
    @click.option("--json", "json_output", is_flag=True, help="Machine-readable JSON output")
    @functools.wraps(func)
    def wrapper(url, token, headers, timeout, tls_no_verify, ca_bundle, proxy, json_output, **kwargs):
        config = ProviderConfig(
            url,
            headers=_parse_headers(headers, token),
            timeout=timeout,
            tls_no_verify=tls_no_verify,
            ca_bundle=ca_bundle,
            proxy=proxy,
        )
        client, diagnostics = configure(config)
        if client is None:
            print_diagnostics(diagnostics, json_output=json_output)
            sys.exit(1)
        reconciler = IdentityProviderReconciler(client)
        return func(reconciler, diagnostics, json_output, **kwargs)
    return wrapper


def _finish(result: Dict[str, Any], config_diagnostics, json_output: bool):
    diagnostics = list(config_diagnostics) + [Diagnostic.from_dict(d) for d in result["diagnostics"]]
    print_diagnostics(
        diagnostics,
        json_output=json_output,
        provider=None if result["failed"] else result["provider"],
        success_message=result["msg"],
    )
    sys.exit(1 if result["failed"] else 0)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log HTTP traffic (credentials redacted)")
@click.version_option(version=__version__)
def main(verbose: bool):
    """Manage GoTrue SAML identity providers.

    Examples:

    \b
      gotrue-sso validate provider.json
      gotrue-sso create provider.json --url https://auth.example.com --token $KEY
      gotrue-sso get 0b6b3e7a-... --json
      gotrue-sso delete 0b6b3e7a-...
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("file", required=False, type=click.Path())
@click.option("--stdin", is_flag=True, help="Read JSON from stdin")
@click.option("--json", "json_output", is_flag=True, help="Machine-readable JSON output")
def validate(file: Optional[str], stdin: bool, json_output: bool):
    """Validate a provider definition without contacting the server."""
    record = _load_record(file, stdin)
    diagnostics = validate_record(record)
    print_diagnostics(diagnostics, json_output=json_output, success_message="Valid identity provider definition")
    sys.exit(1 if has_errors(diagnostics) else 0)


@main.command()
@click.argument("id")
@connection_options
def get(reconciler: IdentityProviderReconciler, config_diagnostics, json_output: bool, id: str):
    """Show an identity provider as a declarative record."""
    record = SAMLIdentityProvider(id=id)
    try:
        reconciler.read(record)
    except (AdminClientError, requests.RequestException) as e:
        print_diagnostics(list(config_diagnostics) + error_diagnostics(e), json_output=json_output)
        sys.exit(1)
    print_diagnostics(list(config_diagnostics), json_output=json_output, provider=record.to_dict())
    sys.exit(0)


@main.command()
@click.argument("file", required=False, type=click.Path())
@click.option("--stdin", is_flag=True, help="Read JSON from stdin")
@connection_options
def create(reconciler: IdentityProviderReconciler, config_diagnostics, json_output: bool,
           file: Optional[str], stdin: bool):
    """Create an identity provider from a JSON definition."""
    record = _load_record(file, stdin)
    _finish(ensure_present(reconciler, record), config_diagnostics, json_output)


@main.command()
@click.argument("id")
@connection_options
def delete(reconciler: IdentityProviderReconciler, config_diagnostics, json_output: bool, id: str):
    """Delete an identity provider."""
    _finish(ensure_absent(reconciler, SAMLIdentityProvider(id=id)), config_diagnostics, json_output)


if __name__ == "__main__":
    main()
