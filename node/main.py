"""
Main entry point for an overlay node.
Load or generate keys, connect to the broker, announce, then serve the HTTP API.
"""
import argparse
import sys

import uvicorn
from loguru import logger
from pydantic import ValidationError

from common.errors import OverlayError
from node.api import create_app
from node.config import NodeConfig
from node.net import BusClient
from node.overlay import OverlayNode


def main(argv=None):
    """
    Start an overlay node.

    Step 1: Build configuration from environment, overridden by flags
    Step 2: Resolve keys and connect/announce on the bus
    Step 3: Serve the HTTP API until interrupted
    """
    ap = argparse.ArgumentParser(description="Encrypted overlay node")
    ap.add_argument("--name", help="Node identity (env OVERLAY_NAME)")
    ap.add_argument("--namespace", help="Topic namespace (env OVERLAY_NAMESPACE)")
    ap.add_argument("--broker-host", help="Broker host (env BROKER_HOST)")
    ap.add_argument("--broker-port", type=int, help="Broker port (env BROKER_PORT)")
    ap.add_argument("--key-dir", help="Key directory (env KEY_DIR)")
    ap.add_argument("--http-host", help="HTTP host (env HTTP_HOST)")
    ap.add_argument("--http-port", type=int, help="HTTP port (env HTTP_PORT)")
    args = ap.parse_args(argv)

    try:
        config = NodeConfig.from_env(**vars(args))
    except ValidationError as err:
        logger.error("Invalid configuration:\n{}", err)
        return 2

    bus = BusClient(config.broker_host, config.broker_port, client_id=config.name)
    try:
        node = OverlayNode.from_config(config, bus)
        node.start()
    except OverlayError as err:
        logger.error("Startup failed: {}", err)
        bus.close()
        return 1

    logger.info("Node {} ready, HTTP on {}:{}", config.name, config.http_host, config.http_port)
    try:
        uvicorn.run(create_app(node), host=config.http_host, port=config.http_port)
    finally:
        node.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
