"""ASGI entrypoint: ``uvicorn esu.api.app:app``."""

from .factory import create_app

app = create_app()
