"""Error taxonomy shared by the orchestration components."""

from __future__ import annotations

from typing import Optional


class OrchestrationError(Exception):
    """Base class for every condition raised by the orchestration layer."""


class Unavailable(OrchestrationError):
    """The AI collaborator could not produce a response."""


class ResourceBusy(OrchestrationError):
    """Work is already in flight for the resource; the new request was rejected."""

    def __init__(self, resource_id: str, message: str) -> None:
        super().__init__(message)
        self.resource_id = resource_id


class Busy(ResourceBusy):
    """A send is already in flight for the session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"Session {session_id} already has a pending message")
        self.session_id = session_id


class WorkflowBusy(ResourceBusy):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(workflow_id, f"Workflow {workflow_id} is already running")
        self.workflow_id = workflow_id


class SendFailed(OrchestrationError):
    """The assistant reply could not be obtained; nothing was recorded."""

    def __init__(self, session_id: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Failed to get AI response for session {session_id}")
        self.session_id = session_id
        self.cause = cause


class ActionFailed(OrchestrationError):
    def __init__(self, action_id: str, reason: str = "execution failed") -> None:
        super().__init__(f"Action {action_id} failed: {reason}")
        self.action_id = action_id
        self.reason = reason


class WorkflowRunFailed(OrchestrationError):
    def __init__(self, workflow_id: str, reason: str) -> None:
        super().__init__(f"Workflow {workflow_id} failed: {reason}")
        self.workflow_id = workflow_id
        self.reason = reason


class MalformedPayload(OrchestrationError):
    """A visualization block was found but could not be decoded."""


class EmptySelection(OrchestrationError):
    """A bulk run was requested without any selected action."""


class UnknownWorkflow(OrchestrationError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow {workflow_id} not found")
        self.workflow_id = workflow_id
