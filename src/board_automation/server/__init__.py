"""FastAPI server adapter for board-automation.

This module exposes a REST API over the automation engine.

Design intent:
- Keep business logic in `board_automation.engine.*`
- Keep server-specific concerns (routing, CORS, request models) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from board_automation.server.app import create_app
