"""Aries exchange controller CLI.

Usage:
    aries-exchange run                      # Ingress + operator prompt
    aries-exchange run --port 4455 --label Bob
    aries-exchange health                   # Check the agent is ready
    aries-exchange config                   # Show configuration

    aries-exchange did list                 # List wallet DIDs
    aries-exchange did public               # Show the public DID
    aries-exchange did create               # Create a local DID
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import click

from .config import MATCH_POLICIES, RuntimeSettings
from .errors import ExchangeRuntimeError, MissingAttributeError, TransportError, ValidationError
from .sdk.client import AdminClient, create_client

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

OPERATOR_COMMANDS = [
    ("1", "create-invitation", "Create invitation"),
    ("2", "receive-invitation", "Receive invitation"),
    ("3", "register-schema", "Register schema"),
    ("4", "create-credential-definition", "Create credential definition"),
    ("5", "issue-credential", "Issue credential"),
    ("6", "propose-presentation", "Send presentation proposal"),
    ("7", "request-presentation", "Send presentation request"),
    ("8", "submit-presentation", "Send presentation"),
    ("9", "verify-presentation", "Verify presentation"),
    ("10", "list-proof-credentials", "List presentation proof credentials"),
    ("status", "status", "Show current exchange state"),
    ("exit", "exit", "Exit"),
]


def _settings_from_options(**options: Any) -> RuntimeSettings:
    try:
        return RuntimeSettings.from_env(**options)
    except ValueError as e:
        raise click.UsageError(str(e)) from e


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default="info",
    help="Logging verbosity",
)
def main(log_level: str) -> None:
    """Aries exchange controller - drives connections, issuance and proofs
    on a remote agent and tracks their progress from its webhooks.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# =============================================================================
# Run
# =============================================================================


@main.command("run")
@click.option("--admin-url", default=None, help="Agent admin API URL")
@click.option("--api-key", "admin_api_key", default=None, help="Agent admin API key")
@click.option("--host", "webhook_host", default=None, help="Host to bind the webhook listener to")
@click.option("--port", "webhook_port", type=int, default=None, help="Webhook listener port")
@click.option("--label", default=None, help="Label presented to counterparties")
@click.option("--match-policy", type=click.Choice(MATCH_POLICIES), default=None)
@click.option(
    "--wait-for-agent",
    type=float,
    default=30.0,
    show_default=True,
    help="Seconds to wait for the agent to report ready (0 to skip)",
)
def run(wait_for_agent: float, **options: Any) -> None:
    """Listen for agent notifications and accept operator commands."""
    from .runtime import ExchangeRuntime

    settings = _settings_from_options(**options)
    runtime = ExchangeRuntime(settings)

    try:
        asyncio.run(_operator_session(runtime, wait_for_agent))
    except KeyboardInterrupt:
        click.echo("\nShutting down", err=True)


async def _operator_session(runtime, wait_for_agent: float) -> None:
    async def print_event(payload: dict[str, Any]) -> None:
        props = payload.get("properties", {})
        details = " ".join(f"{k}={v}" for k, v in props.items() if v not in (None, "", {}))
        click.echo(f"\n -> {payload.get('type')}: {details}")

    unsubscribe = await runtime.bus.subscribe_all(print_event)
    try:
        try:
            await runtime.start(wait_for_agent=wait_for_agent or None)
        except (TransportError, TimeoutError) as e:
            click.echo(f"Agent at {runtime.settings.admin_url} is not ready: {e}", err=True)
            return
        click.echo(f"Hi {runtime.settings.label}, listening on {runtime.ingress.url}", err=True)
        click.echo(f"Agent admin API on {runtime.settings.admin_url}", err=True)

        while True:
            choice = await asyncio.to_thread(_prompt_menu)
            if choice == "exit":
                return
            handler = _MENU_HANDLERS.get(choice)
            if handler is None:
                click.echo(f"Unknown command: {choice}", err=True)
                continue
            try:
                await handler(runtime.driver)
            except MissingAttributeError as e:
                click.echo(f"Cannot submit presentation: {e}", err=True)
            except ValidationError as e:
                click.echo(f"Invalid command: {e}", err=True)
            except TransportError as e:
                click.echo(f"Agent error: {e}", err=True)
    finally:
        unsubscribe()
        await runtime.stop()


def _prompt_menu() -> str:
    lines = ["Choose:"]
    for key, _, title in OPERATOR_COMMANDS:
        lines.append(f"\t({key}) {title}")
    click.echo("\n".join(lines))
    choice = click.prompt("Enter Command", default="", show_default=False).strip()
    for key, name, _ in OPERATOR_COMMANDS:
        if choice in (key, name):
            return name
    return choice


async def _ask(text: str, default: str | None = None) -> str:
    return await asyncio.to_thread(click.prompt, text, default=default, show_default=False)


async def _cmd_create_invitation(driver) -> None:
    alias = await _ask("Who/What is the invitation for?")
    invitation = await driver.create_invitation(alias)
    click.echo(f"Invitation json: {json.dumps(invitation)}")


async def _cmd_receive_invitation(driver) -> None:
    invitation = await _ask("Invitation json")
    connection = await driver.receive_invitation(invitation)
    click.echo(f"Connection ID: {connection.connection_id}")


async def _cmd_register_schema(driver) -> None:
    name = await _ask("Schema name")
    version = await _ask("Version")
    attributes = await _ask("Attributes (comma separated, e.g.: name,age)")
    schema = await driver.register_schema(name, version, attributes.split(","))
    click.echo(f"Schema: {schema.schema_id} {schema.attribute_names}")


async def _cmd_create_credential_definition(driver) -> None:
    click.echo("This is slow, it takes a couple of seconds.")
    cred_def_id = await driver.create_credential_definition()
    click.echo(f"Credential Definition ID: {cred_def_id}")


async def _cmd_issue_credential(driver) -> None:
    schema = driver.store.current_schema()
    if schema is None:
        # Let the driver raise its prerequisite error
        await driver.issue_credential({})
        return
    comment = await _ask("Comment", default="")
    values = {}
    for name in schema.attribute_names:
        values[name] = await _ask(f"Attribute {name!r} value")
    record = await driver.issue_credential(values, comment)
    click.echo(f"Credential exchange: {record.credential_exchange_id} ({record.state})")


async def _cmd_propose_presentation(driver) -> None:
    comment = await _ask("Comment", default="")
    record = await driver.propose_presentation(comment)
    click.echo(f"Presentation exchange: {record.presentation_exchange_id} ({record.state})")


async def _cmd_request_presentation(driver) -> None:
    comment = await _ask("Comment", default="")
    record = await driver.request_presentation(comment)
    click.echo(f"Presentation exchange: {record.presentation_exchange_id} ({record.state})")


async def _cmd_submit_presentation(driver) -> None:
    record = await driver.submit_presentation()
    click.echo(f"Presentation exchange: {record.presentation_exchange_id} ({record.state})")


async def _cmd_verify_presentation(driver) -> None:
    record = await driver.verify_presentation()
    click.echo(f"Presentation {record.presentation_exchange_id} verified: {record.verified}")


async def _cmd_list_proof_credentials(driver) -> None:
    credentials = await driver.list_proof_credentials()
    if not credentials:
        click.echo("No matching credentials.")
    for credential in credentials:
        click.echo(f"Credential {credential.cred_info.referent}: {credential.cred_info.attrs}")


async def _cmd_status(driver) -> None:
    _echo_json(driver.status())


_MENU_HANDLERS: dict[str, Callable[[Any], Awaitable[None]]] = {
    "create-invitation": _cmd_create_invitation,
    "receive-invitation": _cmd_receive_invitation,
    "register-schema": _cmd_register_schema,
    "create-credential-definition": _cmd_create_credential_definition,
    "issue-credential": _cmd_issue_credential,
    "propose-presentation": _cmd_propose_presentation,
    "request-presentation": _cmd_request_presentation,
    "submit-presentation": _cmd_submit_presentation,
    "verify-presentation": _cmd_verify_presentation,
    "list-proof-credentials": _cmd_list_proof_credentials,
    "status": _cmd_status,
}


# =============================================================================
# Health
# =============================================================================


@main.command("health")
@click.option("--admin-url", default=None, help="Agent admin API URL")
@click.option("--api-key", "admin_api_key", default=None, help="Agent admin API key")
def health(admin_url: str | None, admin_api_key: str | None) -> None:
    """Check whether the agent reports itself ready."""
    settings = _settings_from_options(admin_url=admin_url, admin_api_key=admin_api_key)
    _do_health_check(settings)


def _do_health_check(settings: RuntimeSettings) -> None:
    async def check() -> bool:
        client = create_client(settings.admin_url, settings.admin_api_key, timeout=5.0)
        try:
            return await client.is_ready()
        except TransportError as e:
            click.echo(f"Cannot reach agent at {settings.admin_url}: {e}", err=True)
            return False
        finally:
            await client.close()

    if asyncio.run(check()):
        click.echo(f"Agent is ready: {settings.admin_url}")
    else:
        click.echo(f"Agent at {settings.admin_url} is not ready", err=True)
        sys.exit(1)


# =============================================================================
# Wallet DIDs
# =============================================================================


@main.group()
def did() -> None:
    """Inspect and manage wallet DIDs."""


def _run_with_client(action: Callable[[AdminClient], Awaitable[Any]]) -> Any:
    settings = _settings_from_options()

    async def execute() -> Any:
        client = create_client(settings.admin_url, settings.admin_api_key, settings.request_timeout)
        try:
            return await action(client)
        finally:
            await client.close()

    try:
        return asyncio.run(execute())
    except ExchangeRuntimeError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@did.command("list")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
def did_list(output_format: str) -> None:
    """List DIDs held in the agent's wallet."""
    dids = _run_with_client(lambda client: client.wallet.query_dids())

    if output_format == FORMAT_JSON:
        _echo_json([d.model_dump() for d in dids])
        return

    if not dids:
        click.echo("No DIDs found.")
        return

    click.echo(f"{'DID':<34} {'Posture':<14} {'Method':<8} {'Verkey'}")
    click.echo("-" * 90)
    for d in dids:
        click.echo(f"{d.did:<34} {d.posture or '':<14} {d.method or '':<8} {d.verkey or ''}")


@did.command("public")
def did_public() -> None:
    """Show the wallet's public DID."""
    public = _run_with_client(lambda client: client.wallet.get_public_did())
    if public is None:
        click.echo("No public DID is set.")
        return
    click.echo(f"{public.did} ({public.verkey})")


@did.command("create")
def did_create() -> None:
    """Create a new local DID."""
    created = _run_with_client(lambda client: client.wallet.create_local_did())
    click.echo(f"Created {created.did} ({created.verkey})")


# =============================================================================
# Configuration
# =============================================================================


@main.command("config")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def show_config(output_json: bool) -> None:
    """Show current configuration.

    Examples:

        aries-exchange config
        aries-exchange config --json
    """
    settings = _settings_from_options()
    config = settings.to_dict()

    if output_json:
        click.echo(json.dumps(config, indent=2))
        return

    click.echo("Aries Exchange Configuration")
    click.echo("-" * 40)
    click.echo(f"Admin URL:          {config['admin_url']}")
    click.echo(f"Admin API key:      {config['admin_api_key'] or 'none'}")
    click.echo(f"Webhook listener:   {config['webhook_host']}:{config['webhook_port']}")
    click.echo(f"Label:              {config['label']}")
    click.echo(f"Request timeout:    {config['request_timeout']}s")
    click.echo(f"Shutdown timeout:   {config['shutdown_timeout']}s")
    click.echo(f"Lookback window:    {config['lookback_seconds']}s")
    click.echo(f"Lookahead window:   {config['lookahead_seconds']}s")
    click.echo(f"Match policy:       {config['match_policy']}")


if __name__ == "__main__":
    main()
