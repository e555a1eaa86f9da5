from __future__ import annotations

import re

from peer_chat.constants import ADDRESS_ALLOWED_PATTERN, ADDRESS_PLACEHOLDER
from peer_chat.state import ChatStateStore

_DISALLOWED = re.compile(ADDRESS_ALLOWED_PATTERN)


def derive_address(handle: str) -> str:
    """Map a handle onto the overlay network's address alphabet.

    Every character outside ``[a-zA-Z0-9]`` becomes ``_``. The mapping is
    deterministic but lossy: ``"a.b"`` and ``"a_b"`` share an address.
    """
    return _DISALLOWED.sub(ADDRESS_PLACEHOLDER, handle)


class IdentityResolver:
    def __init__(self, store: ChatStateStore):
        self.store = store

    def derive_address(self, handle: str) -> str:
        return derive_address(handle)

    def resolve_contact_for_address(self, address: str) -> str | None:
        """Return the id of the first contact living at ``address``, if any.

        Bots never resolve since they have no network presence.
        """
        for contact in self.store.contacts:
            if contact.is_bot:
                continue
            if derive_address(contact.username) == address:
                return contact.id
        return None
