"""Process entry point — run one aggregation to completion and exit."""

import signal
import sys

from config import configure_logging, load_settings
from engine.orchestrator import AggregationOrchestrator
from errors import ConfigurationError, PipelineError
from storage.document_store import build_store


class _StopFlag:
    """Set by SIGTERM/SIGINT; the orchestrator only looks at it before its first write."""

    def __init__(self):
        self.requested = False

    def __call__(self) -> bool:
        return self.requested

    def request(self, signum, frame):
        self.requested = True


def main() -> int:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        configure_logging("aggregation-main").error("configuration_error", error=str(e))
        return 2

    log = configure_logging("aggregation-main", settings.log_level)
    stop = _StopFlag()
    signal.signal(signal.SIGTERM, stop.request)
    signal.signal(signal.SIGINT, stop.request)

    store = build_store(settings)
    log.info("aggregation_starting", deployment=settings.deployment_id, backend=settings.store_backend)
    try:
        report = AggregationOrchestrator(store, settings).run(should_stop=stop)
    except PipelineError as e:
        log.error("aggregation_exit", error=e.code, detail=str(e))
        return 1
    finally:
        store.close()

    log.info("aggregation_exit", **report.to_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())
