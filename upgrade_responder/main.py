#!/usr/bin/python3

import logging
import signal
from typing import Any, Dict, Optional

from flask import Flask
from werkzeug.serving import make_server

from .logging_config import configure_logging
from .resources import ServerResources, open_resources
from .response_generator import ResponseGenerator, ResponseStrategy
from .routes import register_request_logging, register_routes
from .runtime_config import load_env_config
from .sentry_config import init_sentry
from .telemetry import TelemetryRecorder


logger = logging.getLogger(__name__)


def create_app(config: Dict[str, Any], resources: ServerResources) -> Flask:
    """Build the Flask app over already-opened resources."""
    app = Flask(__name__)
    register_request_logging(app)

    generator = ResponseGenerator(
        resources.catalog,
        strategy=config.get("response_strategy", ResponseStrategy.ALWAYS_LATEST),
    )
    recorder = TelemetryRecorder(
        resources.location_resolver,
        sink=resources.sink,
        background=config.get("telemetry_background", True),
    )
    app.response_generator = generator
    app.telemetry_recorder = recorder
    app.server_resources = resources

    register_routes(app, generator, recorder)
    logger.info(
        "Application initialized: strategy=%s telemetry_enabled=%s latest=%s",
        generator.strategy.value,
        recorder.enabled,
        resources.catalog.latest.name,
    )
    return app


def handle_shutdown(resources: ServerResources, signum: int, _frame: Optional[object]) -> None:
    logger.info("Received signal %s, shutting down", signum)
    resources.close()
    raise SystemExit(0)


def main() -> None:
    cfg = load_env_config()
    configure_logging(
        cfg["log_level"],
        cfg["log_format"],
        include_identifiers=cfg["log_include_identifiers"],
        debug=cfg["debug"],
    )
    init_sentry(cfg["sentry_dsn"])
    if not cfg["influxdb_url"]:
        logger.info("UR_INFLUXDB_URL not set, usage telemetry disabled")

    with open_resources(cfg) as resources:
        app = create_app(cfg, resources)
        signal.signal(signal.SIGTERM, lambda signum, frame: handle_shutdown(resources, signum, frame))
        signal.signal(signal.SIGINT, lambda signum, frame: handle_shutdown(resources, signum, frame))

        server = make_server(cfg["bind_host"], cfg["port"], app, threaded=True)
        logger.info("Listening on %s:%s", cfg["bind_host"], cfg["port"])
        try:
            server.serve_forever()
        finally:
            server.server_close()


if __name__ == "__main__":
    main()
