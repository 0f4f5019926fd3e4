"""Field-device agent: broker telemetry plus chunked over-the-air firmware updates."""

__version__ = "0.1.0"
