"""
Low-level HTTP client for the Cloudinary upload API.

Requests are signed with the account secret (SHA-1 over the sorted
parameters). Each upload attempt is bounded by the client timeout.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import mimetypes
import time

import httpx

from app.services.cloudinary.config import (
    DEFAULT_HEADERS,
    DEFAULT_MIME_TYPE,
    DESTROY_URL,
    UPLOAD_URLS,
)

logger = logging.getLogger(__name__)


class CloudinaryError(Exception):
    """Raised when every upload endpoint failed or a delete was refused."""


def sign(params: dict[str, str], api_secret: str) -> str:
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()


class CloudinaryClient:
    """Async client for signed uploads and deletes."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._cloud = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self._client = httpx.AsyncClient(
            headers=DEFAULT_HEADERS,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _signed(self, params: dict[str, str]) -> dict[str, str]:
        return {
            **params,
            "api_key": self._api_key,
            "signature": sign(params, self._api_secret),
        }

    async def upload(self, data: bytes, filename: str, *, folder: str) -> str:
        """Upload image bytes and return the hosted ``secure_url``."""
        mime = mimetypes.guess_type(filename)[0] or DEFAULT_MIME_TYPE
        encoded = base64.b64encode(data).decode("ascii")
        payload = self._signed({"folder": folder, "timestamp": str(int(time.time()))})
        payload["file"] = f"data:{mime};base64,{encoded}"

        last_error: Exception | None = None
        for attempt, template in enumerate(UPLOAD_URLS, start=1):
            url = template.format(cloud=self._cloud)
            try:
                resp = await self._client.post(url, json=payload)
                resp.raise_for_status()
                secure_url = resp.json().get("secure_url")
                if not secure_url:
                    raise CloudinaryError("No secure_url in upload response")
            except (httpx.HTTPError, ValueError, CloudinaryError) as exc:
                last_error = exc
                logger.warning(
                    "Cloudinary upload via endpoint %d/%d failed: %s",
                    attempt, len(UPLOAD_URLS), exc,
                )
                continue
            logger.info("Uploaded %s to Cloudinary via endpoint %d", filename, attempt)
            return secure_url

        raise CloudinaryError(f"Upload failed on all endpoints: {last_error}")

    async def destroy(self, public_id: str) -> None:
        payload = self._signed({"public_id": public_id, "timestamp": str(int(time.time()))})
        resp = await self._client.post(DESTROY_URL.format(cloud=self._cloud), data=payload)
        resp.raise_for_status()
        if resp.json().get("result") != "ok":
            raise CloudinaryError(f"Cloudinary refused to delete {public_id}")
