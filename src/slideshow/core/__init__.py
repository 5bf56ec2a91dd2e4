"""Core application wiring: settings and the FastAPI factory."""
