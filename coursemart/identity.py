"""Caller identity passed explicitly into every commerce operation."""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, as resolved by the identity provider for one request."""
    user_id: int
    email: str
    full_name: Optional[str] = None
