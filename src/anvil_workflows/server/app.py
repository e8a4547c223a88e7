"""FastAPI app factory.

Endpoints are thin wrappers over the workflow store and runner.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from anvil_workflows import __version__
from anvil_workflows.engine.logging import configure_logging
from anvil_workflows.engine.terminal.channel import PtyTerminalChannel, TerminalChannel
from anvil_workflows.engine.workflow.runner import WorkflowRunner
from anvil_workflows.engine.workflow.store import WorkflowStore
from anvil_workflows.server.config import ServerSettings
from anvil_workflows.server.router import router

logger = logging.getLogger(__name__)


def create_app(
    *, settings: ServerSettings | None = None, channel: TerminalChannel | None = None
) -> FastAPI:
    settings = settings if settings is not None else ServerSettings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Anvil Workflows",
        version=__version__,
        description="Store, preview and run approval-gated shell workflows.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    if channel is None:
        channel = PtyTerminalChannel(
            shell=settings.shell, cols=settings.terminal_cols, rows=settings.terminal_rows
        )

    store = WorkflowStore(settings.workflows_dirname)

    # Request handlers read these from `request.app.state`.
    app.state.settings = settings
    app.state.store = store
    app.state.channel = channel
    app.state.runner = WorkflowRunner(channel=channel, store=store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    logger.info(
        "Workflow server configured",
        extra={"default_workspace": str(settings.default_workspace or "")},
    )
    return app
