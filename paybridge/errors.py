"""API error types and their JSON error handlers.

Services raise these; the handlers registered in create_app() turn them
into ``{"error": message}`` responses with the matching status code.
Stripe failures are surfaced with the upstream message as a 500.
"""

import logging

import stripe
from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors returned to API callers."""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class BadRequest(ApiError):
    status_code = 400


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class Conflict(ApiError):
    status_code = 409


class UpstreamError(ApiError):
    """A call to Stripe or Supabase failed."""

    status_code = 500


class StorageError(UpstreamError):
    """Supabase Storage / RPC call failed or is not configured."""


def register_error_handlers(app):
    """Render every error as JSON."""

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        if e.status_code >= 500:
            logger.error(f"Upstream failure: {e.message}")
        return jsonify(error=e.message), e.status_code

    @app.errorhandler(stripe.StripeError)
    def handle_stripe_error(e):
        message = e.user_message or str(e)
        logger.error(f"Stripe error: {message}")
        return jsonify(error=message), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify(error=e.description), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        logger.error(f"Unhandled error: {e}", exc_info=True)
        return jsonify(error=str(e)), 500
