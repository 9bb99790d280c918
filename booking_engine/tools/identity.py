"""
Identity and authorization port.

Authentication lives outside the engine. The engine only asks who is
calling and whether that user holds administrative capability.
"""

import logging
import threading
from typing import Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    def current_requester_id(self) -> str: ...

    def has_admin_capability(self, user_id: str) -> bool: ...


class StaticIdentityProvider:
    """Identity adapter for tests, the CLI demo, and trusted internal callers.

    The current requester is tracked per thread so concurrent requests
    made from different threads do not see each other's identity.
    """

    def __init__(self, requester_id: Optional[str] = None, admin_ids: Iterable[str] = ()) -> None:
        self._default_requester = requester_id
        self._admin_ids = set(admin_ids)
        self._local = threading.local()

    def set_requester(self, requester_id: Optional[str]) -> None:
        self._local.requester_id = requester_id

    def current_requester_id(self) -> str:
        requester = getattr(self._local, "requester_id", None) or self._default_requester
        if not requester:
            raise LookupError("No authenticated requester")
        return requester

    def grant_admin(self, user_id: str) -> None:
        self._admin_ids.add(user_id)
        logger.info("Admin capability granted to %s", user_id)

    def has_admin_capability(self, user_id: str) -> bool:
        return user_id in self._admin_ids
