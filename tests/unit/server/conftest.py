import asyncio

import pytest
from fastapi.testclient import TestClient

from src.server import build_services
from src.server.dependencies import set_services, set_session_store, set_workflow_store
from src.server.session.store import SQLiteSessionStore
from src.server.workflows.store import SQLiteWorkflowStore


@pytest.fixture
def services(tmp_path, fake_invoker, read_models, channel):
    db_path = str(tmp_path / "api.db")
    session_store = SQLiteSessionStore(db_path)
    workflow_store = SQLiteWorkflowStore(db_path)
    asyncio.run(session_store.init())
    asyncio.run(workflow_store.init())
    set_session_store(session_store)
    set_workflow_store(workflow_store)

    services = build_services(
        message_log=session_store,
        workflow_repository=workflow_store,
        invoker=fake_invoker,
        read_models=read_models,
        notifications=channel,
    )
    set_services(services)
    yield services

    set_services(None)
    set_workflow_store(None)
    set_session_store(None)


@pytest.fixture
def client(services):
    from src.server.app import app

    with TestClient(app) as test_client:
        yield test_client
