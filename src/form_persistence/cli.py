"""CLI tool for inspecting and clearing persisted form data.

Only the durable tier and the blob store are reachable from here; the
session tier lives inside the host process.
"""

import asyncio
import json
from typing import Optional

import typer
from typing_extensions import Annotated

from form_persistence.config import DEFAULT_STORAGE_PREFIX, get_database_url
from form_persistence.errors import FormPersistenceError
from form_persistence.lifecycle import MARKER_SUFFIX, SESSION_SUFFIX, StorageKeys
from form_persistence.models.snapshot import FormSnapshot, format_timestamp
from form_persistence.observability.logging import setup_logging
from form_persistence.storage.bundle import FormStorage


app = typer.Typer(help="Form persistence management CLI")

DatabaseUrl = Annotated[
    Optional[str],
    typer.Option(
        "--database-url",
        help="SQLAlchemy URL of the durable store (default: FORM_PERSISTENCE_DATABASE_URL)",
    ),
]
Prefix = Annotated[
    str, typer.Option("--prefix", help="Storage key prefix")
]


def get_storage(database_url: Optional[str]) -> FormStorage:
    return FormStorage.from_url(database_url or get_database_url())


@app.callback()
def main(
    log_level: Annotated[
        Optional[str], typer.Option(help="Log level override")
    ] = None,
):
    setup_logging(log_level or "WARNING", json_output=False)


@app.command("forms")
def forms_list(database_url: DatabaseUrl = None, prefix: Prefix = DEFAULT_STORAGE_PREFIX):
    """Lists the forms that have a durable snapshot."""
    storage = get_storage(database_url)
    keys = asyncio.run(storage.durable.keys(prefix))
    form_ids = [
        k[len(prefix):]
        for k in keys
        if not k.endswith(MARKER_SUFFIX) and not k.endswith(SESSION_SUFFIX)
    ]
    if not form_ids:
        typer.echo("No stored forms found.")
        return

    for form_id in form_ids:
        closed = f"{prefix}{form_id}{MARKER_SUFFIX}" in keys
        status = "Closed" if closed else "Open"
        typer.echo(f"[{status}] {form_id}")


@app.command("show")
def show(
    form_id: Annotated[str, typer.Argument(help="The form ID")],
    database_url: DatabaseUrl = None,
    prefix: Prefix = DEFAULT_STORAGE_PREFIX,
):
    """Prints the durable snapshot of a form as JSON."""
    storage = get_storage(database_url)
    keys = StorageKeys(form_id, prefix)
    raw = asyncio.run(storage.durable.get_item(keys.data))
    if raw is None:
        typer.echo(f"No stored data for form: {form_id}", err=True)
        raise typer.Exit(code=1)

    try:
        snapshot = FormSnapshot.from_json(raw)
    except FormPersistenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    output = {
        "formId": form_id,
        "savedAt": format_timestamp(snapshot.saved_at) if snapshot.saved_at else None,
        "fields": snapshot.fields,
    }
    typer.echo(json.dumps(output, indent=2, ensure_ascii=False))


@app.command("files")
def files_list(
    form_id: Annotated[str, typer.Argument(help="The form ID")],
    database_url: DatabaseUrl = None,
):
    """Lists the stored files of a form (metadata only)."""
    storage = get_storage(database_url)

    async def load():
        await storage.blobs.init()
        return await storage.blobs.list_files(form_id)

    records = asyncio.run(load())
    if not records:
        typer.echo(f"No files found for form: {form_id}")
        return

    for r in records:
        typer.echo(
            f"{r.file_id}\t{r.field_name}\t{r.file_name}\t{r.file_type or '-'}\t{r.file_size} bytes"
        )


@app.command("clear")
def clear(
    form_id: Annotated[str, typer.Argument(help="The form ID")],
    yes: Annotated[
        bool, typer.Option("--yes", help="Confirm the deletion")
    ] = False,
    database_url: DatabaseUrl = None,
    prefix: Prefix = DEFAULT_STORAGE_PREFIX,
):
    """Deletes the durable snapshot, close marker and files of a form."""
    if not yes:
        typer.echo("Refusing to clear without --yes.", err=True)
        raise typer.Exit(code=1)

    storage = get_storage(database_url)
    keys = StorageKeys(form_id, prefix)

    async def erase():
        await storage.durable.remove_item(keys.data)
        await storage.durable.remove_item(keys.marker)
        await storage.blobs.init()
        await storage.blobs.clear_files(form_id)

    try:
        asyncio.run(erase())
    except FormPersistenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Cleared form: {form_id}")


if __name__ == "__main__":
    app()
