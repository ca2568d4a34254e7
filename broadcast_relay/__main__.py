import asyncio

import click

from broadcast_relay import MODULE_PATH, BroadcastRelay, load_config
from broadcast_relay.util import setup_logging


@click.command()
@click.option("-c", "--config", "config_path", default=str(MODULE_PATH / "config.toml"), show_default=True,
              type=click.Path(dir_okay=False))
def run(config_path):
    """
    Runs the broadcast signaling relay
    """
    config = load_config(config_path)
    setup_logging(config, MODULE_PATH)
    relay = BroadcastRelay(config)
    try:
        asyncio.run(relay.main())
    except KeyboardInterrupt:
        relay.logger.info("Broadcast relay shutting down")


if __name__ == '__main__':
    run()
