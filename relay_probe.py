"""
Command-line utility for watching a broadcast relay
"""

import asyncio

import click
import websockets
from websockets.asyncio.client import connect

from protocol import *


def describe(msg: Message) -> str:
    """One-line summary of a relay message"""
    match msg:
        case RegisteredMessage(role="viewer"):
            state = "live" if msg.has_broadcaster else "waiting for broadcaster"
            return f"registered as viewer {msg.viewer_id} ({state})"
        case RegisteredMessage():
            return f"registered as {msg.role}"
        case ViewerJoinedMessage() | ViewerLeftMessage() | ViewerMissingMessage():
            return f"{msg.tag_name}: {msg.viewer_id}"
        case OfferMessage() | AnswerMessage():
            return f"{msg.tag_name} for viewer {msg.viewer_id}"
        case CandidateMessage():
            return f"candidate from {msg.origin} for viewer {msg.viewer_id}"
        case ViewerCountMessage():
            return f"viewers: {msg.count}"
        case ErrorMessage():
            return f"error: {msg.message}"
    return msg.tag_name


async def watch_relay(url: str, role: str, raw: bool):
    async with connect(url) as sck:
        await sck.send(RegisterMessage(role=role).to_json())
        try:
            async for msg_raw in sck:
                if raw:
                    click.echo(msg_raw)
                    continue
                try:
                    click.echo(describe(decode_message(msg_raw)))
                except MalformedMessage as e:
                    click.echo(f"Received invalid message: {e}", err=True)
        except websockets.ConnectionClosed:
            pass
        click.echo(f"Connection closed with code {sck.close_code}")


async def stop_relay(url: str):
    async with connect(url) as sck:
        await sck.send(RegisterMessage(role="broadcaster").to_json())
        await sck.send(StopMessage().to_json())
        async for msg_raw in sck:
            msg = decode_message(msg_raw)
            if isinstance(msg, StoppedMessage):
                click.echo("Broadcast stopped")
                return
            if isinstance(msg, ErrorMessage):
                raise click.ClickException(msg.message)


def run_client(coro):
    try:
        asyncio.run(coro)
    except (OSError, websockets.InvalidURI, websockets.InvalidHandshake) as e:
        click.echo(f"Unable to reach relay: {e}", err=True)
        raise SystemExit(1)
    except KeyboardInterrupt:
        pass


@click.group()
@click.option("-u", "--url", default="ws://localhost:3000/ws", show_default=True)
@click.pass_context
def relay_probe(ctx, url):
    """
    Command-line utility for watching and controlling a broadcast relay
    """
    ctx.ensure_object(dict)
    ctx.obj["url"] = url


@relay_probe.command()
@click.argument("role", type=click.Choice(PEER_ROLES))
@click.option("--raw", is_flag=True, help="Print messages as received instead of summaries")
@click.pass_context
def watch(ctx, role, raw):
    """
    Registers with the relay and prints every message it sends.
    Registering as broadcaster takes over from the current broadcaster.
    """
    run_client(watch_relay(ctx.obj["url"], role, raw))


@relay_probe.command()
@click.pass_context
def stop(ctx):
    """
    Takes over as broadcaster and ends the broadcast
    """
    run_client(stop_relay(ctx.obj["url"]))


if __name__ == '__main__':
    relay_probe(obj={})
