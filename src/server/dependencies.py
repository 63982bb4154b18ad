from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from src.config.loader import get_int_env, get_str_env
from src.llms.llm import AIInvoker, get_ai_invoker
from src.orchestration.executor import ActionExecutor
from src.orchestration.notifications import NotificationChannel
from src.orchestration.predictions import PredictionAggregator
from src.orchestration.read_models import InMemoryReadModels, ReadModels
from src.orchestration.runner import BulkActionRunner
from src.orchestration.session import DEFAULT_HISTORY_LIMIT, ConversationService, MessageLog
from src.orchestration.workflows import WorkflowEngine, WorkflowRepository
from src.server.session.store import SQLiteSessionStore
from src.server.workflows.store import SQLiteWorkflowStore

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "orchestration.db"

_SESSION_STORE: Optional[SQLiteSessionStore] = None
_WORKFLOW_STORE: Optional[SQLiteWorkflowStore] = None


def initialise_stores() -> tuple[SQLiteSessionStore, SQLiteWorkflowStore]:
    """Create the stores from configuration; both share one database file."""
    global _SESSION_STORE, _WORKFLOW_STORE
    db_path = get_str_env("ORCHESTRATION_DB_PATH", DEFAULT_DB_PATH)
    if _SESSION_STORE is None:
        _SESSION_STORE = SQLiteSessionStore(db_path)
        logger.info("Initialised session store with DB path %s", _SESSION_STORE.db_path)
    if _WORKFLOW_STORE is None:
        _WORKFLOW_STORE = SQLiteWorkflowStore(db_path)
        logger.info("Initialised workflow store with DB path %s", _WORKFLOW_STORE.db_path)
    return _SESSION_STORE, _WORKFLOW_STORE


def set_session_store(store: Optional[SQLiteSessionStore]) -> None:
    global _SESSION_STORE
    _SESSION_STORE = store


def set_workflow_store(store: Optional[SQLiteWorkflowStore]) -> None:
    global _WORKFLOW_STORE
    _WORKFLOW_STORE = store


def get_session_store() -> SQLiteSessionStore:
    if _SESSION_STORE is None:
        raise RuntimeError("Session store has not been initialised")
    return _SESSION_STORE


@dataclass(slots=True)
class Services:
    notifications: NotificationChannel
    read_models: ReadModels
    executor: ActionExecutor
    conversation: ConversationService
    runner: BulkActionRunner
    engine: WorkflowEngine
    predictions: PredictionAggregator


_SERVICES: Optional[Services] = None


def build_services(
    *,
    message_log: MessageLog,
    workflow_repository: WorkflowRepository,
    invoker: AIInvoker,
    read_models: ReadModels,
    notifications: Optional[NotificationChannel] = None,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
) -> Services:
    """Wire the orchestration components around one shared notification channel."""
    channel = notifications or NotificationChannel()
    executor = ActionExecutor(invoker, read_models)
    return Services(
        notifications=channel,
        read_models=read_models,
        executor=executor,
        conversation=ConversationService(
            invoker, message_log, read_models, channel, history_limit=history_limit
        ),
        runner=BulkActionRunner(executor, read_models, channel),
        engine=WorkflowEngine(workflow_repository, executor, channel),
        predictions=PredictionAggregator(read_models, executor, channel),
    )


def initialise_services(message_log: MessageLog, workflow_repository: WorkflowRepository) -> Services:
    """Create the orchestration services from configuration, unless already set."""
    global _SERVICES
    if _SERVICES is not None:
        return _SERVICES

    snapshot_path = get_str_env("BUSINESS_SNAPSHOT_PATH")
    read_models = InMemoryReadModels.from_file(snapshot_path) if snapshot_path else InMemoryReadModels()
    services = build_services(
        message_log=message_log,
        workflow_repository=workflow_repository,
        invoker=get_ai_invoker(),
        read_models=read_models,
        history_limit=get_int_env("CHAT_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT),
    )
    _SERVICES = services
    logger.info("Initialised orchestration services")
    return services


def set_services(services: Optional[Services]) -> None:
    global _SERVICES
    _SERVICES = services


def get_services() -> Services:
    if _SERVICES is None:
        raise RuntimeError("Orchestration services have not been initialised")
    return _SERVICES


def get_conversation_service() -> ConversationService:
    return get_services().conversation


def get_bulk_runner() -> BulkActionRunner:
    return get_services().runner


def get_workflow_engine() -> WorkflowEngine:
    return get_services().engine


def get_prediction_aggregator() -> PredictionAggregator:
    return get_services().predictions


def get_notifications() -> NotificationChannel:
    return get_services().notifications
