"""
Authenticated principal issued by the external identity provider
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import UUID


@dataclass
class Principal:
    """Authenticated user principal"""
    subject: str  # JWT 'sub' claim (user id)
    email: Optional[str] = None
    roles: List[str] = None
    raw_claims: Dict[str, Any] = None

    def __post_init__(self):
        if self.roles is None:
            self.roles = []
        if self.raw_claims is None:
            self.raw_claims = {}

    @property
    def user_id(self) -> Optional[UUID]:
        try:
            return UUID(self.subject)
        except (ValueError, TypeError):
            return None
