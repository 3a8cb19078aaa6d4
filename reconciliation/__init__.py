from .escalation import (
    INCIDENT_RECONCILIATION_REQUIRED,
    SEVERITY_CRITICAL,
    ReconciliationEscalator,
)

__all__ = [
    "INCIDENT_RECONCILIATION_REQUIRED",
    "SEVERITY_CRITICAL",
    "ReconciliationEscalator",
]
