"""Application factory that wires configuration, storage and the HTTP API."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .api import create_app
from .config import Settings
from .database import Database, open_database
from .github import GithubApi

logger = logging.getLogger("shaft.application")


def build_database(settings: Settings) -> Database:
    """Open and initialise the backend selected by ``settings.database``."""

    database = open_database(
        settings.database,
        pool_size=settings.pool_size,
        pool_timeout=settings.pool_timeout,
    )
    database.initialize()
    logger.info("Using %s storage backend", database.backend)
    return database


def create_application(
    settings: Settings,
    *,
    database: Optional[Database] = None,
    github: Optional[GithubApi] = None,
) -> FastAPI:
    """Create the ASGI application for ``settings``.

    The GitHub client and the database are closed when the server shuts down.
    """

    if database is None:
        database = build_database(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            app.state.github.close()
            app.state.database.close()
            logger.info("Closed storage and GitHub client")

    return create_app(database=database, settings=settings, github=github, lifespan=lifespan)


__all__ = ["build_database", "create_application"]
