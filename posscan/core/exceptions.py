"""
Application Exception Handling

Single AppException class for all application errors with FastAPI integration.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AppException(Exception):
    """
    Unified application exception for all error scenarios.

    Provides consistent error response format across the entire API and a
    stable ``code`` that scanning sessions copy into their error state.

    Usage:
        raise AppException("Session not found", "SESSION_NOT_FOUND", 404)
        raise AppException("Failed to start camera", "CAMERA_START_FAILED", 503, {"device_id": "0"})

    Error Codes:
        Camera:
            - NO_CAMERA_FOUND (404)
            - CAMERA_UNAVAILABLE (403)
            - CAMERA_START_FAILED (503)
            - CAMERA_STOP_FAILED (500)

        Session:
            - SESSION_NOT_FOUND (404)
            - INVALID_MESSAGE (400)

        General:
            - VALIDATION_ERROR (422)
            - INTERNAL_ERROR (500)
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (e.g., "NO_CAMERA_FOUND")
            status_code: HTTP status code (default: 400)
            details: Additional error context (optional)
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        error_dict = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    FastAPI exception handler for AppException.

    Converts AppException to consistent JSON error response.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)


# ============================================
# CONVENIENCE FACTORY FUNCTIONS
# ============================================

def no_camera_found() -> AppException:
    """Create no camera found exception."""
    return AppException("no camera found on this device", "NO_CAMERA_FOUND", 404)


def camera_unavailable(reason: Optional[str] = None) -> AppException:
    """Create camera permission denied / unavailable exception."""
    details = {"reason": reason} if reason else {}
    return AppException(
        "camera permission denied / unavailable",
        "CAMERA_UNAVAILABLE",
        403,
        details
    )


def camera_start_failed(device_id: str, reason: Optional[str] = None) -> AppException:
    """Create camera start failure exception."""
    details = {"device_id": device_id}
    if reason:
        details["reason"] = reason
    return AppException("failed to start camera", "CAMERA_START_FAILED", 503, details)


def camera_stop_failed(device_id: str, reason: Optional[str] = None) -> AppException:
    """Create camera stop failure exception."""
    details = {"device_id": device_id}
    if reason:
        details["reason"] = reason
    return AppException("failed to stop camera", "CAMERA_STOP_FAILED", 500, details)


def session_not_found(session_id: Optional[str] = None) -> AppException:
    """Create scan session not found exception."""
    details = {"session_id": session_id} if session_id else {}
    return AppException("Scan session not found", "SESSION_NOT_FOUND", 404, details)


def invalid_message(message_type: Optional[str]) -> AppException:
    """Create invalid WebSocket message exception."""
    return AppException(
        f"Unsupported message type: {message_type}",
        "INVALID_MESSAGE",
        400,
        {"type": message_type}
    )


def internal_error(message: str = "Internal server error") -> AppException:
    """Create internal server error exception."""
    return AppException(message, "INTERNAL_ERROR", 500)
