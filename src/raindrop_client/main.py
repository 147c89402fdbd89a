import asyncio
import functools
import json
import logging
from enum import Enum
from typing import List, Optional, Any

import httpx
import toon_format as toon
import typer
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .api import RaindropAPI
from .config import Config, delete_config, load_config, save_config
from .errors import RaindropError
from .models import AccessToken
from .oauth import TokenManager, extract_authorization_code

app = typer.Typer(help="raindrop-client: Raindrop.io API client with OAuth login")
collection_app = typer.Typer(help="Manage collections")
raindrop_app = typer.Typer(help="Manage bookmarks")
tag_app = typer.Typer(help="Manage tags")
console = Console()


class OutputFormat(str, Enum):
    json = "json"
    toon = "toon"


class State:
    output_format: OutputFormat = OutputFormat.toon


state = State()


def configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("raindrop_client")
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        package_logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main(
    format: OutputFormat = typer.Option(OutputFormat.toon, "--format", "-f", help="Output format: toon (default) or json."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every request to stderr."),
):
    """
    raindrop-client: Raindrop.io API client
    """
    state.output_format = format
    configure_logging(verbose)


def output_data(data: Any):
    """Helper to output data in the selected format."""
    if hasattr(data, "model_dump"):
        dumped = data.model_dump(mode="json", by_alias=True, exclude_none=True)
    else:
        dumped = data

    if state.output_format == OutputFormat.toon:
        print(toon.encode(dumped))
    else:
        print(json.dumps(dumped, indent=2))


def fail(message: str, hint: Optional[str] = None):
    print(json.dumps({"error": message, "status": 400, "hint": hint}, indent=2))
    raise typer.Exit(code=1)


def get_token(config: Config) -> str:
    if not config.access_token:
        fail("Not logged in.", "Run `raindrop-client login` first.")
    return config.access_token


def get_token_manager(config: Config) -> TokenManager:
    client_config = config.client_config()
    if client_config is None:
        fail("OAuth app is not configured.", "Run `raindrop-client configure` first.")
    return TokenManager(client_config)


def store_token(config: Config, token: AccessToken) -> None:
    config.access_token = token.access_token
    # Some refresh replies omit the refresh token; keep the previous one then.
    config.refresh_token = token.refresh_token or config.refresh_token
    config.expires_in = token.expires_in
    save_config(config)


def handle_errors(func):
    """Print client errors as JSON and exit with status 1."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            await func(*args, **kwargs)
        except RaindropError as e:
            hint = e.hint
            if not hint:
                if e.status_code == 404:
                    hint = "The requested resource was not found. Verify the ID is correct."
                elif e.status_code == 401:
                    hint = "Authentication failed. Try `raindrop-client refresh` or log in again."
            print(json.dumps({"error": str(e), "status": e.status_code, "hint": hint}, indent=2))
            raise typer.Exit(code=1)
        except httpx.HTTPError as e:
            print(json.dumps({"error": f"Network Error: {e}", "status": 503, "hint": "Check your connection."}, indent=2))
            raise typer.Exit(code=1)

    return wrapper


def run_api(call):
    """Run ``call(api, token)`` against the stored credential and print its result."""
    token = get_token(load_config())
    api = RaindropAPI()

    @handle_errors
    async def run():
        try:
            output_data(await call(api, token))
        finally:
            await api.close()

    asyncio.run(run())


@app.command()
def configure(
    client_id: str = typer.Option(..., prompt="Client ID"),
    client_secret: str = typer.Option(..., prompt="Client secret", hide_input=True),
    redirect_uri: str = typer.Option(..., prompt="Redirect URI"),
):
    """
    Store the OAuth app registration.

    Example: raindrop-client configure --client-id abc --client-secret s3cr3t --redirect-uri http://localhost:8080/oauth
    """
    config = load_config()
    config.client_id = client_id
    config.client_secret = client_secret
    config.redirect_uri = redirect_uri
    save_config(config)
    rprint("[bold green]Saved.[/bold green] Run `raindrop-client login` next.")


@app.command("auth-url")
def auth_url():
    """
    Print the URL to open to authorize the app.

    Example: raindrop-client auth-url
    """
    print(get_token_manager(load_config()).authorization_url())


@app.command()
def login(
    redirect: Optional[str] = typer.Option(None, "--redirect", help="URL the browser was redirected to, or the bare code."),
):
    """
    Authorize the app and store the access token.

    Example: raindrop-client login --redirect "http://localhost:8080/oauth?code=abc"
    """
    config = load_config()
    manager = get_token_manager(config)
    if redirect is None:
        rprint(f"Open this URL and authorize the app:\n[bold]{manager.authorization_url()}[/bold]")
        redirect = typer.prompt("Paste the URL you were redirected to")

    @handle_errors
    async def run():
        try:
            if "://" in redirect:
                code = extract_authorization_code(httpx.URL(redirect).params)
            else:
                code = extract_authorization_code({"code": redirect.strip()})
            token = await manager.exchange_code(code)
            store_token(config, token)
            rprint("[bold green]Success![/bold green] Access token saved.")
        finally:
            await manager.close()

    asyncio.run(run())


@app.command()
def refresh():
    """
    Exchange the stored refresh token for a new access token.

    Example: raindrop-client refresh
    """
    config = load_config()
    if not config.refresh_token:
        fail("No refresh token stored.", "Run `raindrop-client login` first.")
    manager = get_token_manager(config)

    @handle_errors
    async def run():
        try:
            token = await manager.refresh(config.refresh_token)
            store_token(config, token)
            rprint("[bold green]Token refreshed.[/bold green]")
        finally:
            await manager.close()

    asyncio.run(run())


@app.command()
def logout():
    """
    Remove stored credentials and app settings.

    Example: raindrop-client logout
    """
    delete_config()
    rprint("[bold yellow]Logged out.[/bold yellow] Credentials removed.")


# Collection Commands
@collection_app.command("list")
def collection_list(children: bool = typer.Option(False, "--children", help="List child collections instead of root ones")):
    """
    List root (or child) collections.

    Example: raindrop-client collection list --children
    """
    if children:
        run_api(lambda api, token: api.get_child_collections(token))
    else:
        run_api(lambda api, token: api.get_root_collections(token))


@collection_app.command("get")
def collection_get(collection_id: int):
    """
    Get details of a specific collection.

    Example: raindrop-client collection get 123
    """
    run_api(lambda api, token: api.get_collection(token, collection_id))


@collection_app.command("create")
def collection_create(
    title: str,
    parent: Optional[int] = typer.Option(None, help="Parent collection ID (omit for a root collection)"),
    view: Optional[str] = typer.Option(None, help="View style (list, simple, grid, masonry)"),
    sort: Optional[int] = typer.Option(None, help="Sort position"),
    public: Optional[bool] = typer.Option(None, help="Make collection public"),
    cover: Optional[List[str]] = typer.Option(None, help="Cover image URL (repeatable)"),
):
    """
    Create a new collection.

    Example: raindrop-client collection create "Research" --parent 42 --public
    """
    run_api(
        lambda api, token: api.create_collection(
            token, title, view=view, sort=sort, public=public, cover=cover or None, parent_id=parent
        )
    )


# Raindrop Commands
@raindrop_app.command("list")
def raindrop_list(
    collection_id: str = typer.Argument("0", help="Collection ID (0 for all)"),
    perpage: int = typer.Option(25, help="Page size"),
    pretty: bool = typer.Option(False, "--pretty", "-p", help="Display results in a formatted table for humans."),
):
    """
    List bookmarks in a collection.

    Example: raindrop-client raindrop list 123 --perpage 50
    """
    if pretty:
        token = get_token(load_config())
        api = RaindropAPI()

        @handle_errors
        async def run():
            try:
                response = await api.get_raindrops(token, collection_id, perpage)
            finally:
                await api.close()
            table = Table(title=f"Collection {collection_id}")
            table.add_column("ID", style="cyan")
            table.add_column("Title", style="white")
            table.add_column("Tags", style="green")
            table.add_column("Link", style="blue")
            for r in response.items:
                table.add_row(
                    str(r.id),
                    r.title[:50] + ("..." if len(r.title) > 50 else ""),
                    ", ".join(r.tags),
                    r.link[:50] + ("..." if len(r.link) > 50 else ""),
                )
            console.print(table)

        asyncio.run(run())
    else:
        run_api(lambda api, token: api.get_raindrops(token, collection_id, perpage))


@raindrop_app.command("tagged")
def raindrop_tagged(tag: str):
    """
    List bookmarks carrying exactly this tag.

    Example: raindrop-client raindrop tagged recipe
    """
    run_api(lambda api, token: api.get_tagged_raindrops(token, tag))


@raindrop_app.command("add")
def raindrop_add(link: str):
    """
    Bookmark a link; Raindrop fills in the metadata.

    Example: raindrop-client raindrop add "https://example.com"
    """
    run_api(lambda api, token: api.create_simple_raindrop(token, link))


# Tag Commands
@tag_app.command("list")
def tag_list():
    """
    List tags with usage counts.

    Example: raindrop-client tag list
    """
    run_api(lambda api, token: api.get_tags(token))


@tag_app.command("delete")
def tag_delete(tags: List[str] = typer.Argument(..., help="List of tags to delete")):
    """
    Delete tags from all bookmarks.

    Example: raindrop-client tag delete "old-tag" "useless-tag"
    """
    run_api(lambda api, token: api.delete_tags(token, tags))


app.add_typer(collection_app, name="collection")
app.add_typer(raindrop_app, name="raindrop")
app.add_typer(tag_app, name="tag")

if __name__ == "__main__":
    app()
