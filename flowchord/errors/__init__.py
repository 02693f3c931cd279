"""Error types for FlowChord."""

from flowchord.errors.exceptions import (
    APIError,
    ApprovalNotFoundError,
    ApprovalTimeoutError,
    AuthenticationError,
    AuthorizationRequiredError,
    ConfigurationError,
    ExecutionError,
    ExecutionNotFoundError,
    ExecutionNotResumableError,
    ExpressionError,
    FlowChordError,
    InputValidationError,
    InvalidStateTransitionError,
    LLMError,
    MissingAPIKeyError,
    ModelNotFoundError,
    NodeExecutionError,
    NodeTimeoutError,
    RateLimitError,
    TimeoutError,
    WorkflowError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

__all__ = [
    "APIError",
    "ApprovalNotFoundError",
    "ApprovalTimeoutError",
    "AuthenticationError",
    "AuthorizationRequiredError",
    "ConfigurationError",
    "ExecutionError",
    "ExecutionNotFoundError",
    "ExecutionNotResumableError",
    "ExpressionError",
    "FlowChordError",
    "InputValidationError",
    "InvalidStateTransitionError",
    "LLMError",
    "MissingAPIKeyError",
    "ModelNotFoundError",
    "NodeExecutionError",
    "NodeTimeoutError",
    "RateLimitError",
    "TimeoutError",
    "WorkflowError",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
]
