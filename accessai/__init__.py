"""AccessAI: realtime voice sessions and an agentic browser-control loop."""

__version__ = "0.1.0"
