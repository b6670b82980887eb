"""External-collaborator services."""

from .derivatives_status import DerivativesStatus, DerivativesStatusService, StatusProvider

__all__ = ["DerivativesStatus", "DerivativesStatusService", "StatusProvider"]
