"""
Request-level security helpers: response security headers and the
PostgreSQL row-level-security session context.
"""

import logging
import os
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

IS_PRODUCTION = os.getenv("ENVIRONMENT", "development").lower() == "production"


def set_rls_context(db: Session, user_id: str, organization_id: Optional[str] = None) -> None:
    """
    Set the RLS context for a database session.

    Only PostgreSQL understands ``set_config``; other dialects are left alone.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    try:
        db.execute(
            text("SELECT set_config('app.current_user_id', :user_id, false)"),
            {"user_id": str(user_id)},
        )
        if organization_id:
            db.execute(
                text("SELECT set_config('app.current_organization_id', :org_id, false)"),
                {"org_id": str(organization_id)},
            )
        logger.debug(f"RLS context set for user_id={user_id} organization_id={organization_id}")
    except Exception as e:
        logger.error(f"Failed to set RLS context for user_id={user_id}: {e}")
        raise


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds the standard security headers to every API response."""

    def __init__(self, app, exclude_paths: Optional[list[str]] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or []

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        if any(request.url.path.startswith(path) for path in self.exclude_paths):
            return response

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        if IS_PRODUCTION:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response
