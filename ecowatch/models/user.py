"""
User models for authorization.
Identity comes from Firebase Authentication; roles from the `users` collection.
"""

from pydantic import BaseModel, Field
from typing import Optional, Set

COUNCIL_ROLE = "council"


class User(BaseModel):
    """Authenticated caller. Absence of the council role implies citizen."""
    uid: str = Field(..., description="Identity provider user ID")
    email: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    roles: Set[str] = Field(default_factory=set)

    class Config:
        populate_by_name = True

    @property
    def is_council(self) -> bool:
        return COUNCIL_ROLE in self.roles
