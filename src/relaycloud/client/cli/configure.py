"""Configure command for RelayCloud CLI.

Commands:
- configure: Store bot tokens and destination channel
"""

from __future__ import annotations

import sys

import click

from relaycloud.client.api import mask_token
from relaycloud.client.cli.config import get_config_file, load_config, save_config


@click.command()
@click.option(
    "--token",
    "tokens",
    multiple=True,
    help="Bot token; repeat for each bot of the pool.",
)
@click.option("--channel", default=None, help="Destination chat/channel id.")
@click.option("--api-url", default=None, help="Bot API base URL.")
@click.option("--show", is_flag=True, help="Only show the current configuration.")
def configure(
    tokens: tuple[str, ...],
    channel: str | None,
    api_url: str | None,
    show: bool,
) -> None:
    """Configure the bot pool and destination channel.

    Options not given keep their current value.
    """
    config = load_config()

    if not show:
        if not tokens and channel is None and api_url is None:
            click.echo("Error: Nothing to configure. See 'relaycloud configure --help'.", err=True)
            sys.exit(1)

        if tokens:
            config["tokens"] = [t.strip() for t in tokens if t.strip()]
        if channel is not None:
            config["channel_id"] = channel
        if api_url is not None:
            config["api_url"] = api_url.rstrip("/")
        save_config(config)
        click.echo(f"Configuration saved to {get_config_file()}")

    stored_tokens = config.get("tokens") or []
    click.echo(f"Tokens:  {len(stored_tokens)}")
    for token in stored_tokens:
        click.echo(f"  - {mask_token(token)}")
    click.echo(f"Channel: {config.get('channel_id') or '(not set)'}")
    if config.get("api_url"):
        click.echo(f"API URL: {config['api_url']}")
