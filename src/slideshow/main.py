"""ASGI entry point: ``uvicorn src.slideshow.main:app``."""

from .core.app import create_app

app = create_app()
