"""fanrelay: webhook-to-WebSocket fan-out relay."""

__version__ = "0.1.0"
