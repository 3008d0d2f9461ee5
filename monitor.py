#!/usr/bin/env python3

import asyncio
import argparse
import os
import signal
import sys
from config.config import load_settings, CONFIG_PATH
from log_utils import setup_logging
from liveness.supervisor import ProcessSupervisor, RestartPolicy
from liveness.heartbeat_client import HeartbeatWatcher

ROOT = os.path.dirname(os.path.abspath(__file__))


async def main(args):
    settings = load_settings(args.config)

    log_settings = settings.logging
    logger = setup_logging(
        level=log_settings.level,
        log_file=os.path.join(settings.resolve_path(log_settings.log_dir), "monitor.log"),
        enable_console=True,
        enable_structured=log_settings.structured,
        max_bytes=log_settings.max_file_size,
        backup_count=log_settings.max_files,
        secrets=settings.secret_values()
    )
    logger.info("Starting sweeper watchdog")

    policy = RestartPolicy.from_settings(settings.websocket)
    command = [sys.executable, os.path.join(ROOT, "main.py"), "--config", os.path.abspath(args.config)]
    supervisor = ProcessSupervisor(command, policy, cwd=ROOT)
    watcher = HeartbeatWatcher(settings.websocket.url, policy, supervisor)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    if not args.attach:
        await supervisor.start()

    tasks = [
        asyncio.create_task(watcher.run()),
        asyncio.create_task(watcher.run_probe()),
    ]

    await stop_event.wait()
    logger.info("Shutting down watchdog")
    await watcher.close()
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await supervisor.stop()
    logger.info("Watchdog stopped")


def run():
    parser = argparse.ArgumentParser(description='Liveness watchdog for the TRON sweeper')
    parser.add_argument('--config', type=str, default=CONFIG_PATH,
                        help=f'Path to the JSON config file (default: {CONFIG_PATH})')
    parser.add_argument('--attach', action='store_true',
                        help='Watch an already running service instead of spawning one')
    args = parser.parse_args()
    asyncio.run(main(args))


if __name__ == "__main__":
    run()
