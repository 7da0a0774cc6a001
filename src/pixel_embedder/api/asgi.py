"""ASGI entrypoint for the pixel embedder API."""

from pixel_embedder.api.app import create_app
from pixel_embedder.containers import build_container

app = create_app(build_container())
