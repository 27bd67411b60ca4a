"""Console actuator: one turn against a page loaded over HTTP."""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from typing import Any

import click
from websockets.exceptions import ConnectionClosed

from ..domain.errors import ToolError
from ..logging import configure_logging
from ..settings import get_settings
from .client import ActuatorClient
from .page import HtmlPage


async def _confirm(request: dict[str, Any]) -> bool:
    prompt = f"Allow {request.get('tool')}: {request.get('label')}?"
    return await asyncio.to_thread(click.confirm, prompt, default=False)


def _print_event(message: dict[str, Any]) -> None:
    kind = message["type"]
    if kind == "assistant_delta":
        click.echo(message.get("textDelta", ""), nl=False)
    elif kind == "step_event":
        click.secho(f"\n- {message.get('step', '')}", fg="cyan")
    elif kind == "assistant_final":
        click.secho(f"\n{message.get('text', '')}", bold=True)


async def _run_turn(client: ActuatorClient, page_url: str | None, text: str) -> None:
    if page_url:
        try:
            await client.page.navigate(page_url, timeout=30.0)
        except ToolError as exc:
            raise click.ClickException(f"cannot load {page_url}: {exc.code.value}") from exc
    await client.connect()
    server = asyncio.create_task(client.serve())
    try:
        await client.send_user_message(text)
        done = asyncio.create_task(client.turn_done.wait())
        finished, _ = await asyncio.wait(
            {done, server}, return_when=asyncio.FIRST_COMPLETED
        )
        if done not in finished:
            done.cancel()
            raise click.ClickException("backend closed the channel")
    finally:
        server.cancel()
        with contextlib.suppress(asyncio.CancelledError, ConnectionClosed):
            await server
        await client.close()


@click.command()
@click.argument("text")
@click.option("--page", "page_url", help="URL to load before the turn starts.")
@click.option("--url", "backend_url", help="Backend websocket URL.")
@click.option("--token", envvar="TABPILOT_PAIRING_TOKEN", required=True)
@click.option("--session-id", default=lambda: uuid.uuid4().hex)
@click.option("--auto-run/--no-auto-run", default=False, show_default=True)
def main(
    text: str,
    page_url: str | None,
    backend_url: str | None,
    token: str,
    session_id: str,
    auto_run: bool,
) -> None:
    """Send TEXT to the backend and act on its tool requests."""
    configure_logging()
    settings = get_settings()
    url = backend_url or f"ws://{settings.host}:{settings.port}{settings.ws_path}"
    client = ActuatorClient(
        url=url,
        session_id=session_id,
        token=token,
        page=HtmlPage(),
        approve=_confirm,
        on_event=_print_event,
        auto_run=auto_run,
    )
    try:
        asyncio.run(_run_turn(client, page_url, text))
    except KeyboardInterrupt:
        click.echo("\ninterrupted")


if __name__ == "__main__":
    main()
