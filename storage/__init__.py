from .database import Database
from .models import (
    Base,
    IncidentRecord,
    OrderRecord,
    new_id,
    utcnow,
)

__all__ = [
    "Database",
    "Base",
    "IncidentRecord",
    "OrderRecord",
    "new_id",
    "utcnow",
]
