# storefront_cart/repos/session_repo.py
from typing import Optional

from pydantic import ValidationError

from storefront_cart.domain.schemas import CustomerProfile

GUEST_SESSION_KEY = "guest_session"
CUSTOMER_KEY = "customer"


class SessionRepo:
    """Typed access to the two identifiers the cart core persists."""

    def __init__(self, storage):
        self.storage = storage

    def get_session_token(self) -> Optional[str]:
        return self.storage.get(GUEST_SESSION_KEY) or None

    def save_session_token(self, token: str) -> None:
        self.storage.set(GUEST_SESSION_KEY, token)

    def delete_session_token(self) -> None:
        self.storage.delete(GUEST_SESSION_KEY)

    def get_customer(self) -> Optional[CustomerProfile]:
        raw = self.storage.get(CUSTOMER_KEY)
        if not raw:
            return None
        try:
            return CustomerProfile.model_validate_json(raw)
        except ValidationError:
            #corrupt snapshot, nothing to restore
            self.storage.delete(CUSTOMER_KEY)
            raise

    def save_customer(self, profile: CustomerProfile) -> None:
        self.storage.set(CUSTOMER_KEY, profile.model_dump_json())

    def delete_customer(self) -> None:
        self.storage.delete(CUSTOMER_KEY)
