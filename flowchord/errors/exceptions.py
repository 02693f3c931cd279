"""Errors raised by the engine, node handlers and LLM backends.

The executor's retry policy reads `retryable`; the API layer maps the
lookup errors onto 404/409 responses.
"""

from __future__ import annotations


class FlowChordError(Exception):
    """Root of the hierarchy; `message` is what callers see."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = retryable


# Configuration
class ConfigurationError(FlowChordError):
    """Engine or provider settings are unusable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)


class MissingAPIKeyError(ConfigurationError):
    """An agent node needs a provider whose key is not set."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            f"No API key for provider '{provider}'; "
            f"export {provider.upper()}_API_KEY before running agent nodes"
        )
        self.provider = provider


# Model calls
class LLMError(FlowChordError):
    """A model call failed; carries the provider and model involved."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        model: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.provider = provider
        self.model = model


class RateLimitError(LLMError):
    """HTTP 429 from a provider. `retry_after` holds its hint in seconds."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        model: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, provider=provider, model=model, retryable=True)
        self.retry_after = retry_after


class AuthenticationError(LLMError):
    """The provider refused the key."""

    def __init__(self, message: str, *, provider: str) -> None:
        super().__init__(message, provider=provider, retryable=False)


class APIError(LLMError):
    """Any other provider failure; server-side ones are retried."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        model: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider=provider, model=model, retryable=True)
        self.status_code = status_code


class TimeoutError(LLMError):
    """The provider did not answer within the client timeout."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        model: str | None = None,
        timeout_seconds: float,
    ) -> None:
        super().__init__(message, provider=provider, model=model, retryable=True)
        self.timeout_seconds = timeout_seconds


class ModelNotFoundError(LLMError):
    """No registered provider claims the model name."""

    def __init__(self, model: str, provider: str | None = None) -> None:
        super().__init__(
            f"Unknown model '{model}' (provider: {provider or 'none matched'})",
            provider=provider or "unknown",
            model=model,
            retryable=False,
        )


# Workflow definition and run
class WorkflowError(FlowChordError):
    """Base class for workflow definition and run errors."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message, retryable=retryable)


class WorkflowValidationError(WorkflowError):
    """Workflow graph is structurally invalid."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message, retryable=False)
        self.errors = errors or [message]


class InputValidationError(WorkflowError):
    """Caller-supplied input does not match the start node's declared variables."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message, retryable=False)
        self.field = field


class NodeExecutionError(WorkflowError):
    """A node handler failed. The message is surfaced verbatim to callers."""

    def __init__(
        self,
        message: str,
        *,
        node_id: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.node_id = node_id


class NodeTimeoutError(NodeExecutionError):
    """Node handler exceeded its time budget."""

    def __init__(self, node_id: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Node '{node_id}' timed out after {timeout_seconds}s",
            node_id=node_id,
            retryable=True,
        )
        self.timeout_seconds = timeout_seconds


class ExpressionError(WorkflowError):
    """Interpolation or condition expression could not be evaluated."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"Invalid expression '{expression}': {reason}")
        self.expression = expression
        self.reason = reason


class AuthorizationRequiredError(WorkflowError):
    """A tool cannot proceed until the user completes an external authorization."""

    def __init__(
        self,
        message: str,
        *,
        tool_name: str,
        auth_id: str,
        auth_url: str | None = None,
    ) -> None:
        super().__init__(message, retryable=False)
        self.tool_name = tool_name
        self.auth_id = auth_id
        self.auth_url = auth_url


class ApprovalTimeoutError(WorkflowError):
    """Approval request expired before anyone acted on it."""

    def __init__(self, approval_id: str) -> None:
        super().__init__(f"Approval '{approval_id}' timed out")
        self.approval_id = approval_id


class InvalidStateTransitionError(WorkflowError):
    """Execution status change not allowed by the state machine."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot transition execution from '{current}' to '{target}'")
        self.current = current
        self.target = target


# Lookups
class ExecutionError(FlowChordError):
    """Base class for errors addressing stored executions and workflows."""


class WorkflowNotFoundError(ExecutionError):
    """No stored workflow with this id."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow '{workflow_id}' not found")
        self.workflow_id = workflow_id


class ExecutionNotFoundError(ExecutionError):
    """No execution record with this id."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution '{execution_id}' not found")
        self.execution_id = execution_id


class ApprovalNotFoundError(ExecutionError):
    """Approval record not found."""

    def __init__(self, approval_id: str) -> None:
        super().__init__(f"Approval '{approval_id}' not found")
        self.approval_id = approval_id


class ExecutionNotResumableError(ExecutionError):
    """The execution is not waiting on anything a resume could satisfy."""

    def __init__(self, execution_id: str, reason: str) -> None:
        super().__init__(f"Execution '{execution_id}' cannot be resumed: {reason}")
        self.execution_id = execution_id
        self.reason = reason
