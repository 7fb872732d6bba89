"""Upgrade responder: reports the latest release and records usage telemetry."""

__version__ = "0.1.0"
