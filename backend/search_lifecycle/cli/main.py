"""CLI entrypoint for the search lifecycle service."""

from __future__ import annotations

import json
import os
from typing import Optional

import requests
import typer

app = typer.Typer(name="slc", help="Search collection lifecycle command-line interface")
jobs_app = typer.Typer(name="jobs")
app.add_typer(jobs_app, name="jobs")

DEFAULT_HOST = "http://127.0.0.1:8765"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("SLC_SERVICE_URL")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=600, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _parse_partition(raw: str) -> object:
    """Partitions are JSON literals; bare words are taken as strings."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


@app.command("list")
def list_collections(
    host: Optional[str] = typer.Option(None, "--host", help="Override service URL"),
) -> None:
    """List registered collections."""
    resp = _request("GET", "/collections", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def status(
    name: str = typer.Argument(..., help="Logical collection name"),
    host: Optional[str] = typer.Option(None, "--host", help="Override service URL"),
) -> None:
    """Show live state, alias target and generations."""
    resp = _request("GET", f"/collections/{name}", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def diff(
    name: str = typer.Argument(..., help="Logical collection name"),
    as_json: bool = typer.Option(False, "--json", help="Print the structured diff"),
    host: Optional[str] = typer.Option(None, "--host", help="Override service URL"),
) -> None:
    """Compare the registered schema with the live collection."""
    payload = _request("GET", f"/collections/{name}/diff", host=host).json()
    typer.echo(json.dumps(payload["diff"], indent=2) if as_json else payload["pretty"])


@app.command()
def indexate(
    name: str = typer.Argument(..., help="Logical collection name"),
    partition: Optional[list[str]] = typer.Option(
        None, "--partition", "-p", help="Partition token (JSON literal); repeat for a partial run"
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Override service URL"),
) -> None:
    """Create, migrate or refresh a collection."""
    body: dict[str, object] = {}
    if partition:
        body["partitions"] = [_parse_partition(item) for item in partition]
    resp = _request("POST", f"/collections/{name}/indexate", host=host, json=body)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def reindexate(
    name: str = typer.Argument(..., help="Logical collection name"),
    yes: bool = typer.Option(False, "--yes", help="Confirm dropping the live collection"),
    host: Optional[str] = typer.Option(None, "--host", help="Override service URL"),
) -> None:
    """Drop the live collection and rebuild it."""
    if not yes:
        yes = typer.confirm(f"Drop and rebuild {name!r}?")
    if not yes:
        raise typer.Exit(code=1)
    resp = _request("POST", f"/collections/{name}/reindexate", host=host, json={"confirm": True})
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def rollback(
    name: str = typer.Argument(..., help="Logical collection name"),
    host: Optional[str] = typer.Option(None, "--host", help="Override service URL"),
) -> None:
    """Point the alias back at the previous generation."""
    resp = _request("POST", f"/collections/{name}/rollback", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def cleanup(
    name: str = typer.Argument(..., help="Logical collection name"),
    partition: Optional[str] = typer.Option(None, "--partition", "-p", help="Partition token (JSON literal)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Compile the filter without deleting"),
    host: Optional[str] = typer.Option(None, "--host", help="Override service URL"),
) -> None:
    """Delete stale documents."""
    body: dict[str, object] = {"dry_run": dry_run}
    if partition is not None:
        body["partition"] = _parse_partition(partition)
    resp = _request("POST", f"/collections/{name}/cleanup", host=host, json=body)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def cascade(
    name: str = typer.Argument(..., help="Logical collection name"),
    ids: Optional[list[str]] = typer.Option(None, "--id", help="Changed record id (JSON literal); repeatable"),
    update: bool = typer.Option(False, "--update", help="Partial reindex of dependents by the given ids"),
    host: Optional[str] = typer.Option(None, "--host", help="Override service URL"),
) -> None:
    """Reindex collections that depend on this one."""
    body: dict[str, object] = {"context": "update" if update else "full"}
    if ids:
        body["ids"] = [_parse_partition(item) for item in ids]
    resp = _request("POST", f"/collections/{name}/cascade", host=host, json=body)
    typer.echo(json.dumps(resp.json(), indent=2))


@jobs_app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override service URL"),
) -> None:
    """Show an asynchronous index job."""
    resp = _request("GET", f"/jobs/{job_id}", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    app()
