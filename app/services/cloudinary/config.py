"""
Cloudinary integration configuration.

Upload endpoints are tried in order; the first one that answers with a
``secure_url`` wins.
"""

from __future__ import annotations

# ── API endpoints ─────────────────────────────────────────────────────────

UPLOAD_URLS = (
    "https://api.cloudinary.com/v1_1/{cloud}/image/upload",
    "https://res.cloudinary.com/v1_1/{cloud}/image/upload",
    "https://{cloud}-res.cloudinary.com/v1_1/{cloud}/image/upload",
)
DESTROY_URL = "https://api.cloudinary.com/v1_1/{cloud}/image/destroy"

DEFAULT_HEADERS = {
    "Accept": "application/json",
}

# Content type assumed when the filename gives no hint.
DEFAULT_MIME_TYPE = "image/jpeg"
