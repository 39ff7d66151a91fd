from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    """Caller identity as supplied by the upstream gateway. Not authenticated here."""

    user_id: str
    account_id: str
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.user_id
