"""ezkonnect command-line interface.

Commands:
    ezkonnect state [--json]                         List instrumentation state.
    ezkonnect annotate NAME -n NS -k KIND -c CONTAINER [--log-type T] [--service-name S]
                                                     Change instrumentation and wait.
    ezkonnect version                                Print version and exit.

All commands call the REST API at http://localhost:5050 (configurable via
``--api-url``).
"""

from __future__ import annotations

import json

import click
import httpx

from ezkonnect import __version__

_DEFAULT_API_URL = "http://localhost:5050"

# The server holds annotate requests open until the reconciler confirms.
_ANNOTATE_HTTP_TIMEOUT_S = 330.0


def _flag(value: object) -> str:
    return click.style("yes", fg="green") if value else click.style("no", fg="bright_black")


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _request(api_url: str, method: str, path: str, timeout: float, body: dict[str, object] | None = None) -> object:
    """Perform a request and return the parsed JSON body.

    Raises click.ClickException on connection errors or non-2xx responses.
    """
    url = api_url.rstrip("/") + path
    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.request(method, url, json=body)
        response.raise_for_status()
        return response.json()
    except httpx.ConnectError as err:
        raise click.ClickException(f"Cannot connect to ezkonnect API at {api_url}. Is the server running?") from err
    except httpx.HTTPStatusError as exc:
        # Error bodies are plain text "<tag>: <detail>".
        text = exc.response.text.strip()[:200] or "no detail"
        raise click.ClickException(f"HTTP {exc.response.status_code}: {text}") from exc


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--api-url",
    default=_DEFAULT_API_URL,
    envvar="EZKONNECT_API_URL",
    show_default=True,
    help="ezkonnect REST API base URL.",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str) -> None:
    """ezkonnect: Kubernetes instrumentation control CLI."""
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url


@cli.command("version")
def cmd_version() -> None:
    """Print the ezkonnect version and exit."""
    click.echo(f"ezkonnect {__version__}")


# ---------------------------------------------------------------------------
# ezkonnect state
# ---------------------------------------------------------------------------


@cli.command("state")
@click.option("--json", "output_json", is_flag=True, default=False, help="Print raw JSON response.")
@click.pass_context
def cmd_state(ctx: click.Context, output_json: bool) -> None:
    """List the instrumentation state of every tracked workload container."""
    data = _request(ctx.obj["api_url"], "GET", "/api/v1/state", timeout=30.0)

    if output_json:
        click.echo(json.dumps(data, indent=2))
        return

    records: list[dict[str, object]] = data if isinstance(data, list) else []
    if not records:
        click.echo("No instrumented applications found.")
        return

    click.echo(click.style(f"Instrumented Applications ({len(records)}):", bold=True))
    for rec in records:
        detected = rec.get("language") or rec.get("application") or "-"
        click.echo(
            f"  {rec.get('controller_kind', '?')}/{rec.get('name', '?')} ({rec.get('namespace', '?')})"
            f"  container={rec.get('container_name') or '-'}"
            f"  detected={detected}"
            f"  traces={_flag(rec.get('traces_instrumented'))}"
            f"  metrics={_flag(rec.get('metrics_instrumented'))}"
            f"  service={rec.get('service_name') or '-'}"
            f"  log_type={rec.get('log_type') or '-'}"
        )


# ---------------------------------------------------------------------------
# ezkonnect annotate
# ---------------------------------------------------------------------------


@cli.command("annotate")
@click.argument("name")
@click.option("--namespace", "-n", required=True, metavar="NS", help="Workload namespace.")
@click.option(
    "--kind",
    "-k",
    "controller_kind",
    required=True,
    type=click.Choice(["deployment", "statefulset"], case_sensitive=False),
    help="Workload kind.",
)
@click.option("--container", "-c", "container_name", required=True, help="Container to instrument.")
@click.option("--log-type", default="", help="Log type; omit to remove it.")
@click.option("--service-name", default="", help="Traces service name; omit to roll instrumentation back.")
@click.option("--json", "output_json", is_flag=True, default=False, help="Print raw JSON response.")
@click.pass_context
def cmd_annotate(
    ctx: click.Context,
    name: str,
    namespace: str,
    controller_kind: str,
    container_name: str,
    log_type: str,
    service_name: str,
    output_json: bool,
) -> None:
    """Change instrumentation of workload NAME and wait for confirmation.

    Example:

        ezkonnect annotate checkout -n shop -k deployment -c app --service-name checkout
    """
    body: dict[str, object] = {
        "name": name,
        "namespace": namespace,
        "controller_kind": controller_kind.lower(),
        "container_name": container_name,
        "log_type": log_type,
        "service_name": service_name,
    }
    if not output_json:
        click.echo(click.style("Annotating", bold=True) + f" {controller_kind.lower()}/{name} ({namespace}) ...")

    data = _request(ctx.obj["api_url"], "POST", "/api/v1/annotate", timeout=_ANNOTATE_HTTP_TIMEOUT_S, body=body)

    if output_json:
        click.echo(json.dumps(data, indent=2))
        return

    result: dict[str, object] = data if isinstance(data, dict) else {}
    click.echo(click.style("Confirmed", fg="green", bold=True))
    click.echo(f"  log_type:     {result.get('log_type') or '-'}")
    click.echo(f"  service_name: {result.get('service_name') or '- (rolled back)'}")


if __name__ == "__main__":
    cli()
