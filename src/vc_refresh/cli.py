"""
Command-line interface for VC Refresh.

Usage:
    vc-refresh did:iden3:issuer did:iden3:owner 8edd8112-8d3d-11ef-8b25-0242ac120002
    vc-refresh --issuer-url https://issuer.example.com ISSUER OWNER CREDENTIAL_ID
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vc_refresh.config import Settings, configure_logging
from vc_refresh.refresh import RefreshOrchestrator, RefreshResult, RefreshStatus


console = Console()

EXIT_CODES = {
    RefreshStatus.REFRESHED: 0,
    RefreshStatus.REJECTED: 1,
    RefreshStatus.FAILED: 2,
}


def format_result(result: RefreshResult) -> None:
    """Format and print a refresh result."""
    if result.is_refreshed:
        status_icon = "[bold green]REFRESHED[/]"
        panel_style = "green"
    elif result.status == RefreshStatus.REJECTED:
        status_icon = "[bold yellow]REJECTED[/]"
        panel_style = "yellow"
    else:
        status_icon = "[bold red]FAILED[/]"
        panel_style = "red"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Status", status_icon)
    table.add_row("Credential ID", result.credential_id)

    if result.credential is not None:
        table.add_row("New Credential ID", result.credential.id or "")
        if result.credential.expiration is not None:
            table.add_row("Expires", result.credential.expiration.isoformat())

    if result.error is not None:
        if result.stage is not None:
            table.add_row("Stage", result.stage.value)
        table.add_row("Error", f"[red]{result.error.message}[/]")

    console.print(Panel(table, title="Refresh Result", border_style=panel_style))


def result_to_dict(result: RefreshResult) -> dict[str, Any]:
    """Render a refresh result as JSON-compatible data."""
    return {
        "status": result.status.value,
        "credential_id": result.credential_id,
        "credential": result.credential.raw if result.credential is not None else None,
        "error": {
            "type": type(result.error).__name__,
            "stage": result.stage.value if result.stage else None,
            "message": result.error.message,
        } if result.error is not None else None,
    }


@click.command()
@click.argument("issuer", required=True)
@click.argument("owner", required=True)
@click.argument("credential_id", required=True)
@click.option(
    "--issuer-url",
    help="Issuer node URL, used for every issuer",
)
@click.option(
    "--basic-auth",
    help="Issuer node basic auth as user:password",
)
@click.option(
    "--providers-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory of provider JSON configs",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="HTTP request timeout in seconds",
)
@click.option(
    "--no-ssl-verify",
    is_flag=True,
    help="Disable SSL certificate verification",
)
@click.option(
    "--json-output",
    is_flag=True,
    help="Output result as JSON",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
)
@click.version_option(package_name="vc-refresh")
def main(
    issuer: str,
    owner: str,
    credential_id: str,
    issuer_url: str | None,
    basic_auth: str | None,
    providers_dir: Path | None,
    timeout: float | None,
    no_ssl_verify: bool,
    json_output: bool,
    log_level: str | None,
) -> None:
    """Refresh an expired Verifiable Credential.

    ISSUER is the issuer DID, OWNER the DID of the credential subject and
    CREDENTIAL_ID the id of the expired credential. Options override the
    VC_REFRESH_* environment variables.

    Exit status is 0 when refreshed, 1 when the refresh is rejected and
    2 when it fails.
    """
    try:
        settings = Settings.from_env()
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e

    if issuer_url:
        settings.supported_issuers = {"*": issuer_url}
    if basic_auth:
        if ":" not in basic_auth:
            raise click.BadParameter("expected user:password", param_hint="--basic-auth")
        settings.issuers_basic_auth = {"*": basic_auth}
    if providers_dir is not None:
        settings.providers_dir = providers_dir
    if timeout is not None:
        settings.http_timeout = timeout
    if no_ssl_verify:
        settings.verify_ssl = False
    if log_level:
        settings.log_level = log_level.upper()

    configure_logging(settings.log_level)

    try:
        orchestrator = RefreshOrchestrator.from_settings(settings)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Invalid provider configuration: {e}") from e

    result = orchestrator.refresh(issuer, owner, credential_id)

    if json_output:
        console.print_json(data=result_to_dict(result))
    else:
        format_result(result)

    sys.exit(EXIT_CODES[result.status])


if __name__ == "__main__":
    main()
