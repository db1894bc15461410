"""Ingestion entry point: `python -m ingest.main consume` or `python -m ingest.main simulate`."""

import argparse
import signal
import sys

from config import configure_logging, load_settings
from errors import ConfigurationError
from ingest.consumer import EventIngestor, StreamConsumer
from ingest.simulator import DeviceSimulator
from storage.document_store import build_store
from storage.events import EventWriter


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Device event ingestion")
    parser.add_argument("command", choices=["consume", "simulate"])
    parser.add_argument("--max-events", type=int, default=None, help="simulate: stop after this many events")
    return parser.parse_args(argv)


def _stop_on_signals(stop):
    signal.signal(signal.SIGTERM, stop)
    signal.signal(signal.SIGINT, stop)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings()
    except ConfigurationError as e:
        configure_logging("ingest-main").error("configuration_error", error=str(e))
        return 2

    if args.command == "simulate":
        simulator = DeviceSimulator(settings)
        _stop_on_signals(simulator.stop)
        simulator.run(max_events=args.max_events)
        return 0

    store = build_store(settings)
    try:
        ingestor = EventIngestor(EventWriter(store, settings.events_collection), settings)
        consumer = StreamConsumer(settings, ingestor)
        _stop_on_signals(consumer.stop)
        consumer.run()
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
