"""
==============================================================================
API v1 Endpoints
==============================================================================

Version 1 of the REST API.

Routers:
--------
- health: Health check endpoints
- cameras: Capture device enumeration
- sessions: Open scan session inspection and close

==============================================================================
"""

from . import health, cameras, sessions

__all__ = ["health", "cameras", "sessions"]
