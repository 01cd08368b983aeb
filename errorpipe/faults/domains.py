"""
errorpipe faults - Concrete fault types.

Provides:
- Client faults (4xx, message safe to expose)
- Server faults (5xx, message sanitized)
- Domain-specific faults carrying their own code
- Pipeline faults (configuration, frozen registries, unhandled propagation)
"""

from typing import Any, Optional

from .core import Fault, FaultKind, Severity, response_status


# ============================================================================
# Taxonomy roots
# ============================================================================

class ClientFault(Fault):
    """Base class for faults caused by the client (4xx)."""
    severity = Severity.WARN


class ServerFault(Fault):
    """Base class for faults caused by the server (5xx)."""
    severity = Severity.ERROR


# ============================================================================
# Client faults
# ============================================================================

@response_status(400, code="BAD")
class InvalidInputFault(ClientFault, ValueError):
    """Request input failed validation."""
    kind = FaultKind.INVALID_INPUT
    code = "BAD"

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        super().__init__(message=message, **kwargs)


@response_status(400, code="BAD_REQUEST", reason="error.bad")
class BadRequestFault(ClientFault):
    """Bad request whose reason is a message key."""
    kind = FaultKind.INVALID_INPUT
    code = "BAD_REQUEST"

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        super().__init__(message=message, **kwargs)


@response_status(404, code="NOT_FOUND")
class NotFoundFault(ClientFault, LookupError):
    """Requested resource does not exist."""
    kind = FaultKind.NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        super().__init__(message=message, **kwargs)


@response_status(401, code="UNAUTHORIZED")
class UnauthorizedFault(ClientFault, PermissionError):
    """Caller is not authenticated."""
    kind = FaultKind.UNAUTHORIZED
    code = "UNAUTHORIZED"

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        super().__init__(message=message, **kwargs)


# ============================================================================
# Domain faults
# ============================================================================

class DomainFault(Fault):
    """
    Domain-specific fault identified by its own code.

    Carries no status annotation: without a declared handler it is resolved
    like any other unclassified fault.
    """
    kind = FaultKind.DOMAIN_SPECIFIC

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None, **kwargs: Any):
        super().__init__(FaultKind.DOMAIN_SPECIFIC, code=code, message=message, **kwargs)


class UserFault(DomainFault):
    code = "USER-EX"

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        super().__init__(message=message, **kwargs)


# ============================================================================
# Server faults
# ============================================================================

@response_status(500, code="INTERNAL")
class InternalFault(ServerFault):
    """Explicit internal failure."""
    kind = FaultKind.INTERNAL
    code = "INTERNAL"

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        super().__init__(message=message, **kwargs)


class UnhandledPropagation(ServerFault):
    """
    Fault escaped every strategy and the error route itself.

    Never surfaces to clients; the boundary logs it and answers with the
    minimal fallback response.
    """
    kind = FaultKind.INTERNAL
    code = "UNHANDLED_PROPAGATION"
    severity = Severity.FATAL

    def __init__(self, original: Optional[BaseException], reason: str):
        original_type = type(original).__name__ if original is not None else None
        super().__init__(
            message=f"{reason}: {original_type}" if original_type else reason,
            metadata={"original_type": original_type, "reason": reason},
        )
        self.__cause__ = original


# ============================================================================
# Pipeline configuration faults
# ============================================================================

class ConfigFault(ServerFault):
    """Invalid pipeline configuration."""
    code = "CONFIG_INVALID"
    severity = Severity.FATAL

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(message=message, **kwargs)


class RegistryFrozenFault(ConfigFault):
    """Registration attempted after the tables were frozen."""
    code = "REGISTRY_FROZEN"

    def __init__(self, registry: str):
        super().__init__(
            f"{registry} is frozen; register strategies and routes at startup",
            metadata={"registry": registry},
        )


class ViewNotFoundFault(ServerFault):
    """An explicitly requested error view does not exist."""
    code = "VIEW_NOT_FOUND"

    def __init__(self, view_id: str):
        super().__init__(message=f"Error view '{view_id}' not found", metadata={"view": view_id})
