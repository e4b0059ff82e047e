"""
festival/uploads.py -- Signed upload URLs for the external avatar storage.

The service never handles image bytes. The upload flow is:

  1. Admin calls POST /avatars/upload-url -> {upload_url, storage_id}
  2. Browser PUTs the file straight to upload_url at the storage provider
  3. Admin calls POST /avatars {storage_id, name} to add it to the catalog

Security design:
  upload_url carries an expiry and an HMAC-SHA256(SECRET_KEY, storage_id|expires)
  signature. The storage provider (or a gateway in front of it) recomputes
  the HMAC with the shared key and rejects expired or tampered URLs.
  storage_id is secrets.token_hex(16) -- unguessable, so a client cannot
  overwrite another image by predicting its id.
"""

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from core.config import get_settings


@dataclass(frozen=True)
class UploadTicket:
    storage_id: str
    upload_url: str
    expires_at: int  # unix seconds


def _signature(storage_id: str, expires: int) -> str:
    return hmac.new(
        get_settings().secret_key.encode(),
        f"{storage_id}|{expires}".encode(),
        hashlib.sha256,
    ).hexdigest()


def generate_upload_url(now: Optional[float] = None) -> UploadTicket:
    """Mint a fresh storage id and a signed, expiring upload URL for it."""
    settings = get_settings()
    storage_id = secrets.token_hex(16)
    expires = int(now if now is not None else time.time()) + settings.upload_url_ttl_seconds
    query = urlencode({"expires": expires, "signature": _signature(storage_id, expires)})
    return UploadTicket(
        storage_id=storage_id,
        upload_url=f"{settings.storage_base_url.rstrip('/')}/upload/{storage_id}?{query}",
        expires_at=expires,
    )


def verify_upload_signature(storage_id: str, expires: int, signature: str, now: Optional[float] = None) -> bool:
    """Check an upload URL's signature and expiry (constant-time compare)."""
    current = now if now is not None else time.time()
    if current > expires:
        return False
    return hmac.compare_digest(_signature(storage_id, expires), signature)


def public_url(storage_id: str) -> str:
    """Where browsers fetch a stored image from."""
    return f"{get_settings().storage_base_url.rstrip('/')}/files/{storage_id}"
