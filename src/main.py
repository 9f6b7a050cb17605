"""Command-line entrypoint wiring the replication pipeline together.

This module:

- Loads configuration from the environment (and `.env`).
- Builds the orchestrator, restoring the processed-event store from disk.
- Processes each event id given on the command line, in order.
- Prints the JSON response the HTTP layer would return for each event.

It is a manual harness for replaying notifications; the HTTP listener that
receives notifications in production lives outside this package.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from config import load_config
from observability import DuckDBObservabilitySink, InMemoryObservabilitySink, ObservabilityRecorder
from replication.errors import ValidationError
from replication.service import build_orchestrator, parse_event

logger = logging.getLogger("replication")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replicate encounters from the FHIR proxy to the FHIR node.")
    parser.add_argument("event_ids", nargs="+", metavar="EVENT_ID", help="encounter id(s) to replicate")
    return parser.parse_args(argv)


async def run(event_ids: list[str]) -> int:
    """Process the given event ids sequentially; return the process exit status."""
    cfg = load_config()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Effective configuration: %s", cfg.redacted_summary())

    db_path = cfg.replication.observability_db_path
    sink = DuckDBObservabilitySink(path=db_path) if db_path else InMemoryObservabilitySink()
    recorder = ObservabilityRecorder(sink=sink)

    orchestrator = build_orchestrator(cfg, recorder=recorder)
    exit_status = 0
    try:
        for raw_id in event_ids:
            try:
                event = parse_event({"uuid": raw_id})
            except ValidationError as exc:
                print(json.dumps({"status": "error", "error": str(exc)}))
                exit_status = 1
                continue

            result = await orchestrator.process_event(event.id)
            print(json.dumps(result.to_response()))
            if result.status == "error":
                exit_status = 1
    finally:
        await recorder.aclose()
    return exit_status


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for `python src/main.py EVENT_ID...` / `fhir-replicate EVENT_ID...`."""
    args = _parse_args(argv)
    sys.exit(asyncio.run(run(args.event_ids)))


if __name__ == "__main__":
    main()
