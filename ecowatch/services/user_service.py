"""
User Service - resolve roles for authenticated callers.

Identity (uid, email) comes from Firebase Authentication; roles are stored in
the Firestore `users/{uid}` document. A missing document means citizen.
"""

import logging
from typing import Dict, Iterable, Optional

from firebase_admin import firestore

from ecowatch.config.firebase import get_db
from ecowatch.core.settings import settings
from ecowatch.models.user import User

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


class UserService:
    """
    Role lookup backed by Firestore, or by an in-memory directory when
    USE_MOCK_DB is enabled.
    """

    def __init__(self, db=None, use_memory: Optional[bool] = None):
        self.use_memory = settings.USE_MOCK_DB if use_memory is None else use_memory
        self._db = db
        self._memory_users: Dict[str, Dict] = {}

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    def get_user(self, uid: str, email: Optional[str] = None) -> User:
        """
        Build the User for `uid`, merging stored profile data.

        Lookup failures degrade to a citizen with no roles rather than
        blocking the request.
        """
        data = self._load_profile(uid)
        roles = data.get("roles") or []
        if isinstance(roles, str):
            roles = [roles]

        return User(
            uid=uid,
            email=email or data.get("email"),
            display_name=data.get("displayName"),
            roles=set(roles),
        )

    def set_roles(self, uid: str, roles: Iterable[str], email: Optional[str] = None) -> User:
        """Create or update a user profile with the given roles."""
        profile = {"roles": sorted(set(roles))}
        if email:
            profile["email"] = email

        if self.use_memory:
            self._memory_users.setdefault(uid, {}).update(profile)
        else:
            profile["updatedAt"] = firestore.SERVER_TIMESTAMP
            self.db.collection(USERS_COLLECTION).document(uid).set(profile, merge=True)

        logger.info(f"User {uid} roles set to {profile['roles']}")
        return self.get_user(uid, email=email)

    def _load_profile(self, uid: str) -> Dict:
        if self.use_memory:
            return dict(self._memory_users.get(uid, {}))

        try:
            doc = self.db.collection(USERS_COLLECTION).document(uid).get()
        except Exception as e:
            logger.error(f"Failed to load user profile {uid}: {e}")
            return {}

        if not doc.exists:
            return {}
        return doc.to_dict() or {}


# Global service instance (singleton pattern)
_user_service = None


def get_user_service() -> UserService:
    """
    Get or create UserService singleton instance.
    """
    global _user_service
    if _user_service is None:
        _user_service = UserService()
    return _user_service
