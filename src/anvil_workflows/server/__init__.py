"""FastAPI server adapter for anvil-workflows.

Design intent:
- Keep engine logic in `anvil_workflows.engine.*`
- Keep transport concerns (routing, CORS, HTTP status mapping) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from anvil_workflows.server.app import create_app
