# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config.loader import get_bool_env, get_str_env
from src.server.actions.router import router as actions_router
from src.server.dependencies import initialise_services, initialise_stores
from src.server.notifications.router import router as notifications_router
from src.server.predictions.router import router as predictions_router
from src.server.session.router import router as session_router
from src.server.workflows.router import router as workflows_router

logging.basicConfig(
    level=get_str_env("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    session_store, workflow_store = initialise_stores()
    await session_store.init()
    await workflow_store.init()

    services = initialise_services(session_store, workflow_store)
    if get_bool_env("SEED_DEFAULT_WORKFLOWS", True):
        await services.engine.seed_defaults()
    try:
        yield
    finally:
        await workflow_store.close()
        await session_store.close()


app = FastAPI(
    title="Orchestration API",
    description="AI-assisted conversations, bulk actions, workflows and predictions",
    version="0.1.0",
    lifespan=lifespan,
)

allowed_origins_str = get_str_env("ALLOWED_ORIGINS", "http://localhost:3000")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",")]

logger.info("Allowed origins: %s", allowed_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(session_router)
app.include_router(actions_router)
app.include_router(workflows_router)
app.include_router(predictions_router)
app.include_router(notifications_router)


@app.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
