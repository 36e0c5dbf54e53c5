"""
Exception hierarchy for querygate

Three families reach the caller as distinct messages:
ValidationBlocked (user-correctable, raised before any external call),
ExecutionFailed (translator, database or exporter failure, possibly transient)
and InternalFault (configuration or programming error).
"""
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .security.models import SecurityAlert, ValidationVerdict


class QueryGateError(Exception):
    """Base exception for querygate"""
    retryable: bool = False


class ValidationBlocked(QueryGateError):
    """A security gate rejected the input, the generated SQL or the data access"""

    def __init__(self, alert: "SecurityAlert", verdict: Optional["ValidationVerdict"] = None):
        super().__init__(alert.details)
        self.alert = alert
        self.verdict = verdict


class ExecutionFailed(QueryGateError):
    """An external collaborator failed"""
    retryable = True


class TranslationError(ExecutionFailed):
    """The language model call failed or returned output that could not be parsed"""
    pass


class QueryExecutionError(ExecutionFailed):
    """The database rejected or failed to run a query"""
    pass


class ExportError(ExecutionFailed):
    """Writing an exported SQL script failed"""
    pass


class InternalFault(QueryGateError):
    """Programming or configuration error"""
    pass


class ConfigurationError(InternalFault):
    """Base exception for configuration errors"""
    pass


class ToolRegistryError(InternalFault):
    """Tool registry misuse"""
    pass


class DuplicateToolError(ToolRegistryError):
    """A tool with the same name is already registered"""

    def __init__(self, name: str):
        super().__init__(f"Tool with name {name} already exists")
        self.name = name


class ToolNotFoundError(ToolRegistryError):
    """No tool is registered under the requested name"""

    def __init__(self, name: str):
        super().__init__(f"Tool with name {name} not found")
        self.name = name


class ContextLockTimeout(QueryGateError):
    """The per-user context lock could not be acquired in time"""
    retryable = True

    def __init__(self, user_id: str, timeout: float):
        super().__init__(f"Timed out after {timeout}s waiting for context lock of user {user_id}")
        self.user_id = user_id
        self.timeout = timeout
