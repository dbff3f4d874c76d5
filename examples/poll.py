#!/usr/bin/env python3
"""Example: poll the tags of a TOML config on an interval using poll_iter; graceful shutdown on Ctrl+C."""

import asyncio
import sys

from pyplc_poller import Poller, load_config
from pyplc_poller.errors import ConfigError, PLCConnectionError


async def run(config_path: str, interval_s: float) -> None:
    config = load_config(config_path)
    async with Poller(config) as poller:
        print(f"Polling {len(poller.fields)} fields from {poller.url} every {interval_s}s (Ctrl+C to stop)...")
        async for metrics in poller.poll_iter(interval_s):
            for metric in metrics:
                print(metric.measurement, metric.tags, metric.field_values)


def main() -> None:
    config_path = sys.argv[1] if len(sys.argv) > 1 else "examples/poller.toml"
    interval_s = 1.0

    try:
        asyncio.run(run(config_path, interval_s))
    except KeyboardInterrupt:
        print("\nStopped.")
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)
    except PLCConnectionError as e:
        print(f"Connection error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
