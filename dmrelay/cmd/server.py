from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path

import yaml

from dmrelay.server.runtime import ServerRuntime

log = logging.getLogger("dmrelay.cmd.server")


async def _run(config_path: Path) -> None:
    config = yaml.safe_load(config_path.read_text()) or {}
    if not isinstance(config, dict):
        raise ValueError(f"{config_path}: top level must be a mapping")

    runtime = ServerRuntime(config)
    await runtime.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)
    except NotImplementedError:
        pass

    log.info("Server running. Press Ctrl+C to stop.")
    try:
        await stop_event.wait()
    finally:
        await runtime.stop()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Presence and direct-messaging relay server")
    parser.add_argument("--config", required=True, help="Path to server YAML config")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    asyncio.run(_run(Path(args.config)))


if __name__ == "__main__":
    main()
