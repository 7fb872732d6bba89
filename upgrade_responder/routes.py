import json
import logging
import time

from flask import Flask, Response, g, jsonify, request

from .models import CheckUpgradeRequest, ClientMetadata
from .response_generator import LatestVersionLookupError, ResponseGenerator
from .telemetry import HTTP_HEADER_REQUEST_ID, HTTP_HEADER_X_FORWARDED_FOR, TelemetryRecorder


logger = logging.getLogger(__name__)

HEALTH_CHECK_PATH = "/healthcheck"
CHECK_UPGRADE_PATH = "/v1/checkupgrade"


def _plain_text_error(message: str, status: int = 400) -> Response:
    return Response(message + "\n", status=status, mimetype="text/plain")


def _decode_check_request(body: str) -> CheckUpgradeRequest:
    """Decode a check-upgrade body.

    Raises:
        ValueError: If the body is not a JSON object.
    """
    try:
        payload = json.loads(body)
    except RecursionError as exc:
        message = "request body is nested too deeply"
        raise ValueError(message) from exc
    if not isinstance(payload, dict):
        message = f"request body must be a JSON object, got {type(payload).__name__}"
        raise ValueError(message)
    return CheckUpgradeRequest.from_dict(payload)


def register_request_logging(app: Flask) -> None:
    quiet_paths = {HEALTH_CHECK_PATH}

    @app.before_request
    def _track_request_start() -> None:
        g.request_started_monotonic = time.monotonic()

    @app.after_request
    def _log_request(response):
        request_started = getattr(g, "request_started_monotonic", None)
        latency_ms = 0.0
        if request_started is not None:
            latency_ms = (time.monotonic() - request_started) * 1000

        level = logging.DEBUG if request.path in quiet_paths else logging.INFO
        logger.log(
            level,
            "request method=%s path=%s status=%s latency_ms=%.1f",
            request.method,
            request.path,
            response.status_code,
            latency_ms,
        )
        return response


def register_routes(
    app: Flask,
    generator: ResponseGenerator,
    recorder: TelemetryRecorder,
) -> None:
    """Register the health check and check-upgrade endpoints.

    - GET /healthcheck: always 200, empty body
    - POST /v1/checkupgrade: JSON ``{"longhornVersion", "kubernetesVersion"}`` in,
      ``{"versions": [...]}`` out; decode and lookup failures are 400 plain text

    Telemetry is dispatched before the response is generated and never
    changes its status or body.

    Args:
        app: Flask application instance.
        generator: ResponseGenerator over the startup catalog.
        recorder: TelemetryRecorder for best-effort usage points.
    """

    @app.route(HEALTH_CHECK_PATH, methods=["GET", "HEAD"])
    def health_check():
        return "", 200

    @app.route(CHECK_UPGRADE_PATH, methods=["POST"])
    def check_upgrade():
        try:
            check_request = _decode_check_request(request.get_data(as_text=True))
        except ValueError as exc:
            return _plain_text_error(str(exc))

        client = ClientMetadata(
            forwarded_for=tuple(request.headers.getlist(HTTP_HEADER_X_FORWARDED_FOR)),
            request_id=request.headers.get(HTTP_HEADER_REQUEST_ID, ""),
        )
        recorder.dispatch(client, check_request)

        try:
            check_response = generator.generate(check_request)
        except LatestVersionLookupError as exc:
            logger.error("Failed to generate check upgrade response: %s", exc)
            return _plain_text_error(str(exc))

        return jsonify(check_response.to_dict()), 200
