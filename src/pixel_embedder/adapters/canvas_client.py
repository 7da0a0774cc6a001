"""Canvas HTTP API client."""

import logging
from dataclasses import dataclass

import httpx

from pixel_embedder.adapters.error_reasons import classify_reply
from pixel_embedder.domain.pixels import DispatchResult, ErrorKind, Write
from pixel_embedder.services.differ import RegionSource, RegionThrottledError
from pixel_embedder.services.dispatch import PixelChannel

_logger = logging.getLogger(__name__)


@dataclass
class HttpxCanvasClient(PixelChannel, RegionSource):
    """Canvas client implemented with httpx."""

    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str) -> "HttpxCanvasClient":
        """Create a canvas client with a managed httpx session."""
        return cls(base_url=base_url.rstrip("/"), http_client=httpx.AsyncClient())

    async def submit(self, write: Write) -> DispatchResult:
        """Place a pixel and classify the server's reply."""
        url = f"{self.base_url}/api/pixels"
        payload = {"x": write.x, "y": write.y, "color": f"#{write.color}"}
        try:
            # The dispatcher bounds the wait for an acknowledgement.
            response = await self.http_client.post(url, json=payload, timeout=None)
        except httpx.TransportError as exc:
            _logger.warning("Pixel placement transport error: %s", exc)
            return DispatchResult.failure(ErrorKind.UNKNOWN, str(exc))

        body = _json_body(response)
        error = body.get("error") or body.get("message")
        if response.is_success and not error:
            return DispatchResult.success()

        code = body.get("code")
        message = str(error or response.reason_phrase)
        kind = classify_reply(
            response.status_code,
            code if isinstance(code, str) else None,
            message,
        )
        return DispatchResult.failure(kind, message)

    async def query_region(
        self, x1: int, y1: int, x2: int, y2: int
    ) -> list[dict[str, object]]:
        """Return the pixels currently set inside a region."""
        url = f"{self.base_url}/api/pixels/region/{x1}/{y1}/{x2}/{y2}"
        response = await self.http_client.get(url, timeout=15)
        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise RegionThrottledError(f"Region ({x1}, {y1}) throttled")
        response.raise_for_status()
        pixels = response.json().get("pixels") or []
        return [pixel for pixel in pixels if isinstance(pixel, dict)]

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _json_body(response: httpx.Response) -> dict[str, object]:
    """Return the response body as a dict, or empty when it is not JSON."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
