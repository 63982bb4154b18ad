from __future__ import annotations

import logging

from src.llms.llm import AIInvoker

from .catalog import ANALYST_SYSTEM_PROMPT, ActionDescriptor, prompt_for
from .errors import ActionFailed, Unavailable
from .read_models import ReadModels

logger = logging.getLogger(__name__)


class ActionExecutor:
    """Runs a single catalog action against the AI collaborator.

    Shared by the bulk runner, the workflow engine and prediction quick actions
    so that every path builds prompts and reports failures the same way.
    """

    def __init__(self, invoker: AIInvoker, read_models: ReadModels) -> None:
        self._invoker = invoker
        self._read_models = read_models

    async def execute(self, action: ActionDescriptor) -> str:
        try:
            business_context = await self._read_models.business_context()
        except Exception as exc:  # noqa: BLE001 - read model errors fail only this action
            logger.exception("Could not load business context for action %s", action.id)
            raise ActionFailed(action.id, "business data unavailable") from exc

        prompt = prompt_for(action.operation_type, business_context)
        logger.info("Executing action %s (%s)", action.id, action.operation_type)
        try:
            return await self._invoker.invoke(
                action.domain,
                prompt,
                system_prompt=ANALYST_SYSTEM_PROMPT,
            )
        except Unavailable as exc:
            raise ActionFailed(action.id, str(exc)) from exc
