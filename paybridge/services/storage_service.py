"""Storage service: Supabase Storage signed uploads and Postgres RPCs.

Supabase bucket: client_videos (must be created in the Supabase dashboard).
The mobile client uploads video bytes straight to Supabase with the signed
URL; this service never sees the file contents.

All calls use the service_role key over Supabase's REST API.
"""

import logging
import os
import time
import uuid
from urllib.parse import parse_qs, urlparse

import requests
from werkzeug.utils import secure_filename

from paybridge.errors import StorageError

logger = logging.getLogger(__name__)

# Extension -> MIME type. Only these are accepted for upload.
VIDEO_MIME_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".m4v": "video/x-m4v",
    ".avi": "video/x-msvideo",
}

UPLOAD_PREFIX = "videos"


def validate_video_filename(file_name):
    """Check a client-supplied file name against the video allow-list.

    Only the extension is checked; the bytes are uploaded directly to
    Supabase and never inspected here.

    Returns (ok: bool, error: str|None).
    """
    if not file_name or not str(file_name).strip():
        return False, "Missing fileName"

    ext = os.path.splitext(str(file_name))[1].lower()
    if ext not in VIDEO_MIME_TYPES:
        allowed = ", ".join(e.lstrip(".") for e in VIDEO_MIME_TYPES)
        return False, f"File type '{ext or 'none'}' is not allowed. Accepted: {allowed}."

    return True, None


def mime_type_for(file_name):
    ext = os.path.splitext(file_name)[1].lower()
    return VIDEO_MIME_TYPES.get(ext, "application/octet-stream")


def build_upload_path(file_name):
    """Return a collision-resistant object path for file_name.

    videos/<epoch ms>_<8 hex>_<sanitized name>
    """
    ext = os.path.splitext(file_name)[1].lower()
    safe_name = secure_filename(file_name)
    if not safe_name.lower().endswith(ext):
        safe_name = f"upload{ext}"
    stamp = int(time.time() * 1000)
    return f"{UPLOAD_PREFIX}/{stamp}_{uuid.uuid4().hex[:8]}_{safe_name}"


def _error_message(resp):
    """Pull a readable message out of a Supabase error response."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return (
            body.get("message")
            or body.get("error_description")
            or body.get("error")
            or f"HTTP {resp.status_code}"
        )
    return str(body)


class SupabaseStorage:
    """Supabase REST client for signed upload URLs and RPC calls."""

    def __init__(self, url, service_key, bucket="client_videos", timeout=30):
        self.url = (url or "").rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            url=config.get("SUPABASE_URL"),
            service_key=config.get("SUPABASE_SERVICE_KEY"),
            bucket=config.get("SUPABASE_VIDEO_BUCKET", "client_videos"),
            timeout=config.get("SUPABASE_TIMEOUT", 30),
        )

    @property
    def configured(self):
        return bool(self.url and self.service_key)

    def _headers(self):
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }

    def _post(self, url, payload):
        if not self.configured:
            raise StorageError("Supabase storage is not configured")
        try:
            resp = requests.post(
                url, headers=self._headers(), json=payload, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Supabase request failed: {e}")
            raise StorageError(str(e)) from e

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.error(f"Supabase returned {resp.status_code}: {message}")
            raise StorageError(message)
        return resp

    def create_signed_upload_url(self, path, expires_in=3600):
        """Request a signed upload URL for path in the video bucket.

        Returns dict with signedUrl, token, path.
        """
        resp = self._post(
            f"{self.url}/storage/v1/object/upload/sign/{self.bucket}/{path}",
            {"expiresIn": expires_in},
        )
        relative = resp.json().get("url")
        if not relative:
            raise StorageError("Supabase did not return a signed upload URL")

        token = parse_qs(urlparse(relative).query).get("token", [None])[0]
        logger.info(f"Signed upload URL issued for {self.bucket}/{path}")
        return {
            "signedUrl": f"{self.url}/storage/v1{relative}",
            "token": token,
            "path": path,
        }

    def rpc(self, function, params):
        """Call a Postgres function exposed by PostgREST. Returns parsed JSON or None."""
        resp = self._post(f"{self.url}/rest/v1/rpc/{function}", params)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return None
