"""
Tindo API - Client session context

The verified token claims of the caller, as an explicit object. Realtime
subscriptions derive their topics from this rather than from any ambient
"current user" state.
"""
from dataclasses import dataclass
from typing import Any

ROLE_CUSTOMER = "customer"
ROLE_RESTAURANT = "restaurant"
ROLE_AGENT = "delivery"


@dataclass(frozen=True)
class ClientSession:
    user_id: int
    role: str = ROLE_CUSTOMER
    restaurant_id: int | None = None

    @property
    def agent_id(self) -> int | None:
        return self.user_id if self.role == ROLE_AGENT else None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "ClientSession":
        """Build a session from decoded JWT claims. Raises ValueError if 'sub' is unusable."""
        try:
            user_id = int(claims["sub"])
        except (KeyError, TypeError, ValueError):
            raise ValueError("token has no numeric 'sub' claim")

        role = str(claims.get("role") or ROLE_CUSTOMER)
        # Older clients label agents "delivery_agent"
        if role == "delivery_agent":
            role = ROLE_AGENT

        restaurant_id = claims.get("restaurant_id")
        return cls(
            user_id=user_id,
            role=role,
            restaurant_id=int(restaurant_id) if restaurant_id is not None else None,
        )
