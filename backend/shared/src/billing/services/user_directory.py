"""Read-only lookups against the account directory (``users`` table)."""

import logging
from typing import TYPE_CHECKING, Any

from billing.services.schema import USERS_TABLE

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = logging.getLogger(__name__)


class UserDirectory:
    """Resolves user accounts owned by the identity system."""

    TABLE = USERS_TABLE

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def get(self, user_id: str) -> dict[str, Any] | None:
        """Get a user record by ID."""
        return self.db.get_item(self.TABLE, {"user_id": user_id})

    def matches(self, user_id: str, email: str) -> bool:
        """Check that ``user_id`` exists and is registered under ``email``.

        Email addresses are compared case-insensitively.
        """
        user = self.get(user_id)
        if user is None:
            logger.info("User %s not found", user_id)
            return False
        stored = str(user.get("email", "")).strip().lower()
        if not stored or stored != email.strip().lower():
            logger.info("Email mismatch for user %s", user_id)
            return False
        return True
