"""
Maintenance-mode guard.

``check_maintenance`` reads the maintenance switch from settings and returns a
status value. ``install_maintenance_guard`` registers a Flask before_request
hook that answers every request with the handler's response while the switch
is on, and lets requests through otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from flask import Flask, Request, Response, jsonify, request

from recordmap.config import Settings, get_settings
from recordmap.utils.logging import get_logger

log = get_logger(__name__)

HOOK_CONTEXT = "hooks"

MaintenanceHandler = Callable[[Request, Settings, str], Any]


@dataclass(frozen=True)
class MaintenanceStatus:
    enabled: bool
    message: str = ""
    retry_after: Optional[int] = None


def check_maintenance(settings: Settings) -> MaintenanceStatus:
    """Evaluate the maintenance switch."""
    if not settings.maintenance_mode:
        return MaintenanceStatus(enabled=False)
    return MaintenanceStatus(
        enabled=True,
        message=settings.maintenance_message,
        retry_after=settings.maintenance_retry_after or None,
    )


def maintenance_response(req: Request, settings: Settings, context: str) -> Response:
    """Default handler: a JSON 503 with a Retry-After header."""
    status = check_maintenance(settings)
    response = jsonify(
        {
            "error": {
                "code": "maintenance",
                "message": status.message,
                "context": context,
                "path": req.path,
            }
        }
    )
    response.status_code = 503
    if status.retry_after:
        response.headers["Retry-After"] = str(status.retry_after)
    return response


def install_maintenance_guard(
    app: Flask,
    settings_provider: Callable[[], Settings] = get_settings,
    handler: Optional[MaintenanceHandler] = None,
) -> None:
    """
    Register the maintenance check as a before_request hook on ``app``.

    Args:
        app: The Flask application instance.
        settings_provider: Returns the settings to evaluate on each request.
        handler: Builds the response for requests arriving during
            maintenance; called with (request, settings, "hooks").
    """
    render = handler or maintenance_response

    @app.before_request
    def guard_maintenance():
        settings = settings_provider()
        if not check_maintenance(settings).enabled:
            return None
        log.info("Request blocked by maintenance mode", extra={"path": request.path})
        return render(request, settings, HOOK_CONTEXT)


__all__ = [
    "HOOK_CONTEXT",
    "MaintenanceStatus",
    "check_maintenance",
    "install_maintenance_guard",
    "maintenance_response",
]
