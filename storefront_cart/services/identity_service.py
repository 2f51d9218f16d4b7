# storefront_cart/services/identity_service.py
import secrets
import time
from typing import Optional

from pydantic import ValidationError

from storefront_cart.domain.schemas import CustomerOwner, CustomerProfile, GuestOwner, OwnerKey
from storefront_cart.repos.session_repo import SessionRepo
from storefront_cart.utils.logging import get_logger

logger = get_logger(__name__)


def new_session_token() -> str:
    #timestamp + random suffix, unique with overwhelming probability
    return f"sess-{int(time.time() * 1000)}-{secrets.token_urlsafe(12)}"


class IdentityResolver:
    """
    Decides who owns the cart right now.
    Only touches persisted storage, never the network.
    """

    def __init__(self, session_repo: SessionRepo):
        self.session_repo = session_repo
        self._customer: Optional[CustomerProfile] = None

    @property
    def customer(self) -> Optional[CustomerProfile]:
        return self._customer

    @property
    def is_authenticated(self) -> bool:
        return self._customer is not None

    def restore(self) -> Optional[CustomerProfile]:
        """Pick up the customer persisted by a previous run, if any."""
        try:
            self._customer = self.session_repo.get_customer()
        except ValidationError as e:
            logger.warning(f"Discarding unreadable customer snapshot: {e}")
            self._customer = None
        return self._customer

    def get_session_token(self) -> str:
        token = self.session_repo.get_session_token()
        if not token:
            token = new_session_token()
            self.session_repo.save_session_token(token)
            logger.info(f"Minted guest session {token}")
        return token

    def peek_session_token(self) -> Optional[str]:
        return self.session_repo.get_session_token()

    def discard_session_token(self) -> None:
        self.session_repo.delete_session_token()

    def current_owner(self) -> OwnerKey:
        if self._customer is not None:
            return CustomerOwner(customer_id=self._customer.id)
        return GuestOwner(session_token=self.get_session_token())

    def set_customer(self, profile: CustomerProfile) -> None:
        self._customer = profile
        self.session_repo.save_customer(profile)

    def clear_customer(self) -> None:
        self._customer = None
        self.session_repo.delete_customer()
