"""Run store: durable run records and their attached content.

Uses SQLAlchemy Core with SQLite for development and PostgreSQL for
production deployments.
"""

from longhaul.core.store.content_store import Attachment, ContentStore
from longhaul.core.store.database import RunDB, SchemaCompatibilityError
from longhaul.core.store.run_store import RunStore
from longhaul.core.store.status_validator import VALID_STATUS_TRANSITIONS, is_valid_transition, validate_transition

__all__ = [
    "VALID_STATUS_TRANSITIONS",
    "Attachment",
    "ContentStore",
    "RunDB",
    "RunStore",
    "SchemaCompatibilityError",
    "is_valid_transition",
    "validate_transition",
]
