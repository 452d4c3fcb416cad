"""Entry point: python -m telemetry_bridge"""

from __future__ import annotations

import argparse
import logging
import os

import uvicorn


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    p = argparse.ArgumentParser(description="MQTT → Kafka + InfluxDB telemetry bridge")
    p.add_argument("--host", default=os.getenv("BRIDGE_HTTP_HOST", "0.0.0.0"))
    p.add_argument("--port", type=int, default=int(os.getenv("BRIDGE_HTTP_PORT", "8080")))
    args = p.parse_args()

    uvicorn.run("telemetry_bridge.main:app", host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
