"""
Custom exception hierarchy for domain-specific errors.

This module provides a clean separation between domain errors and HTTP concerns.
Services raise domain exceptions, and the exception handlers in main.py map them to HTTP responses.
"""
from typing import Optional, Dict, Any, Sequence


class DomainException(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# Not Found Errors (404)
# =============================================================================

class NotFoundError(DomainException):
    """Base class for resource not found errors."""
    pass


class RollupNotFoundError(NotFoundError):
    """Rollup does not exist."""

    def __init__(self, identifier: str, key: str = "rollup_id"):
        super().__init__(
            f"Rollup not found for {key}: {identifier}",
            {"identifier": identifier, "key": key},
        )


class ContainerNotFoundError(NotFoundError):
    """No container is tracked for a service."""

    def __init__(self, namespace: str, service_name: str):
        super().__init__(
            f"Container not found for service {service_name} in {namespace}",
            {"namespace": namespace, "service_name": service_name},
        )


class TemplateNotFoundError(NotFoundError):
    """Configuration template does not exist."""

    def __init__(self, template_path: str):
        super().__init__(f"Template not found: {template_path}", {"template_path": template_path})


# =============================================================================
# Conflict Errors (409)
# =============================================================================

class ConflictError(DomainException):
    """Base class for conflicting state errors."""
    pass


class AlreadyExistsError(ConflictError):
    """Base class for resource already exists errors."""
    pass


class RollupAlreadyExistsError(AlreadyExistsError):
    """Rollup with this ID is already registered."""

    def __init__(self, rollup_id: str):
        super().__init__(f"Rollup already exists: {rollup_id}", {"rollup_id": rollup_id})


class RollupBusyError(ConflictError):
    """Another lifecycle operation is in flight for the rollup."""

    def __init__(self, rollup_id: str, operation: str):
        super().__init__(
            f"Rollup {rollup_id} is busy; rejected concurrent {operation}",
            {"rollup_id": rollup_id, "operation": operation},
        )


# =============================================================================
# Validation Errors (400/422)
# =============================================================================

class ValidationError(DomainException):
    """Base class for validation errors."""
    pass


class InvalidConfigurationError(ValidationError):
    """Configuration is invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid configuration for {field}: {reason}", {"field": field, "reason": reason})


class InvalidAddressError(ValidationError):
    """Value is not a 20-byte address."""

    def __init__(self, value: str, reason: str = "Expected a 20-byte hex address"):
        super().__init__(f"{reason}: {value}", {"value": value, "reason": reason})


class RollupStateError(ValidationError):
    """Operation is not permitted in the rollup's current state."""

    def __init__(self, rollup_id: str, operation: str, current_status: str):
        super().__init__(
            f"Cannot {operation} rollup {rollup_id} with status: {current_status}",
            {"rollup_id": rollup_id, "operation": operation, "current_status": current_status},
        )


# =============================================================================
# Operation Errors (500)
# =============================================================================

class OperationError(DomainException):
    """Base class for operation failures."""
    pass


class MissingConfigurationError(OperationError):
    """A required setting or credential is not configured."""

    def __init__(self, name: str):
        super().__init__(f"{name} environment variable not set", {"name": name})


class CommandFailedError(OperationError):
    """External command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], return_code: int, stderr: str):
        self.command = list(command)
        self.return_code = return_code
        self.stderr = stderr
        super().__init__(
            f"Command '{' '.join(self.command)}' failed (exit {return_code}): {stderr.strip()}",
            {"command": self.command, "return_code": return_code, "stderr": stderr},
        )


class ProcessTimeoutError(OperationError):
    """External call did not finish in time."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(
            f"{operation} timed out after {timeout} seconds",
            {"operation": operation, "timeout": timeout},
        )


class ProcessLaunchError(OperationError):
    """External command could not be started."""

    def __init__(self, command: Sequence[str], reason: str):
        super().__init__(
            f"Failed to launch '{' '.join(command)}': {reason}",
            {"command": list(command), "reason": reason},
        )


class OutputParseError(OperationError):
    """Expected marker or field missing from tool output."""

    def __init__(self, field: str, source: str, context: str = ""):
        message = f"Could not extract {field} from {source}"
        if context:
            message = f"{message}: {context}"
        super().__init__(message, {"field": field, "source": source, "context": context})


class DeploymentStepError(OperationError):
    """A contract deployment pipeline step failed."""

    def __init__(self, step: int, step_name: str, reason: str):
        self.step = step
        self.step_name = step_name
        self.reason = reason
        super().__init__(
            f"Deployment step {step} ({step_name}) failed: {reason}",
            {"step": step, "step_name": step_name, "reason": reason},
        )


class ConfigRenderError(OperationError):
    """Node configuration could not be rendered."""

    def __init__(self, target: str, reason: str):
        super().__init__(f"Config generation failed for {target}: {reason}", {"target": target, "reason": reason})


class ManifestError(OperationError):
    """Container-orchestration manifest is missing or malformed."""

    def __init__(self, manifest_path: str, reason: str):
        super().__init__(
            f"Invalid compose manifest {manifest_path}: {reason}",
            {"manifest_path": manifest_path, "reason": reason},
        )


class ContainerApiError(OperationError):
    """Docker API call failed."""

    def __init__(self, operation: str, reason: str):
        super().__init__(f"Docker API {operation} failed: {reason}", {"operation": operation, "reason": reason})


class ContainerCliError(OperationError):
    """Compose CLI invocation failed."""

    def __init__(self, operation: str, reason: str):
        super().__init__(f"Compose CLI {operation} failed: {reason}", {"operation": operation, "reason": reason})


class ContainerFallbackError(OperationError):
    """Both the API path and the CLI fallback failed."""

    def __init__(self, operation: str, primary_error: str, fallback_error: str):
        super().__init__(
            f"{operation} failed via API ({primary_error}) and CLI fallback ({fallback_error})",
            {"operation": operation, "primary_error": primary_error, "fallback_error": fallback_error},
        )


class RollupOperationError(OperationError):
    """A lifecycle operation failed; the rollup was marked failed."""

    def __init__(self, rollup_id: str, operation: str, reason: str):
        super().__init__(
            f"Failed to {operation} rollup {rollup_id}: {reason}",
            {"rollup_id": rollup_id, "operation": operation, "reason": reason},
        )
