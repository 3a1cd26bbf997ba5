# classhub/models/session.py
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class SessionState:
    user_id: str
    email: Optional[str] = None
    roles: Tuple[str, ...] = ()

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles
