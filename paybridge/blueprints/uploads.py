"""Uploads blueprint: /get-upload-url

Hands the mobile client a short-lived Supabase signed upload URL so video
bytes go straight to storage.
"""

import logging

from flask import Blueprint, current_app, jsonify

from paybridge.decorators import json_body
from paybridge.errors import BadRequest
from paybridge.extensions import get_storage, limiter
from paybridge.services.storage_service import (
    build_upload_path,
    mime_type_for,
    validate_video_filename,
)

logger = logging.getLogger(__name__)

uploads_bp = Blueprint("uploads", __name__)


def _expiry_label(seconds):
    if seconds % 3600 == 0:
        hours = seconds // 3600
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    minutes = max(seconds // 60, 1)
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


@uploads_bp.route("/get-upload-url", methods=["POST"])
@limiter.limit("20 per minute")
@json_body
def get_upload_url(data):
    """Issue a signed upload URL for a video.

    Body: { fileName }
    Returns: { signedUrl, path, mimeType, expiresIn, token }
    """
    file_name = data.get("fileName")
    if file_name is not None and not isinstance(file_name, str):
        raise BadRequest("fileName must be a string")

    ok, error = validate_video_filename(file_name)
    if not ok:
        raise BadRequest(error)

    expires_in = current_app.config["UPLOAD_URL_EXPIRES_IN"]
    path = build_upload_path(file_name.strip())
    signed = get_storage().create_signed_upload_url(path, expires_in=expires_in)

    return jsonify(
        signedUrl=signed["signedUrl"],
        token=signed.get("token"),
        path=path,
        mimeType=mime_type_for(path),
        expiresIn=_expiry_label(expires_in),
    ), 200
