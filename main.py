#!/usr/bin/env python3

import asyncio
import argparse
import os
import uvicorn
from web.web import app
from web.heartbeat import heartbeat_app, configure_heartbeat
from config.config import load_settings, CONFIG_PATH
from node.startup import build_services, startup, shutdown
from log_utils import setup_logging


async def main(args):
    settings = load_settings(args.config)

    log_settings = settings.logging
    logger = setup_logging(
        level=args.log_level or log_settings.level,
        log_file=os.path.join(settings.resolve_path(log_settings.log_dir), "sweeper.log"),
        enable_console=True,
        enable_structured=log_settings.structured,
        max_bytes=log_settings.max_file_size,
        backup_count=log_settings.max_files,
        secrets=settings.secret_values(),
        address_logs=True
    )
    logger.info("Starting TRON sweeper")
    logger.info(f"Config: {os.path.abspath(args.config)}")

    context = build_services(settings)
    app.state.services = context
    configure_heartbeat(settings.websocket.heartbeat_interval)

    try:
        await startup(context)
    except Exception as e:
        logger.error(f"Failed to start sweeper: {str(e)}")
        await shutdown(context)
        raise

    config_web = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=True
    )
    server_web = uvicorn.Server(config_web)
    logger.info(f"Web server configured on {settings.host}:{settings.port}")

    config_heartbeat = uvicorn.Config(
        heartbeat_app,
        host=settings.websocket.host,
        port=settings.websocket.port,
        log_config=None,
        access_log=False
    )
    server_heartbeat = uvicorn.Server(config_heartbeat)
    logger.info(f"Heartbeat server configured on {settings.websocket.url}")

    try:
        logger.info("Starting web and heartbeat servers")
        await asyncio.gather(server_web.serve(), server_heartbeat.serve())
    except asyncio.CancelledError:
        logger.info("Servers cancelled, shutting down gracefully")
    except Exception as e:
        logger.error(f"Server error: {str(e)}")
        raise
    finally:
        logger.info("Initiating shutdown")
        await shutdown(context)
        logger.info("Shutdown completed")


def run():
    parser = argparse.ArgumentParser(description='TRON multi-address sweeper')
    parser.add_argument('--config', type=str, default=CONFIG_PATH,
                        help=f'Path to the JSON config file (default: {CONFIG_PATH})')
    parser.add_argument('--log-level', type=str, default=None,
                        help='Override the configured log level')

    args = parser.parse_args()

    try:
        asyncio.run(main(args))
    except KeyboardInterrupt:
        print("Received interrupt signal, shutting down")


if __name__ == "__main__":
    run()
