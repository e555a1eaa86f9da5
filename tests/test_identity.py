from peer_chat.identity import IdentityResolver, derive_address
from peer_chat.models import Contact
from peer_chat.state import ChatStateStore


def test_derive_address_replaces_disallowed_characters():
    assert derive_address("nova") == "nova"
    assert derive_address("Nova_99") == "Nova_99"
    assert derive_address("jane.doe@home") == "jane_doe_home"
    assert derive_address("émile") == "_mile"


def test_derive_address_is_lossy_for_lookalike_handles():
    assert derive_address("a.b") == derive_address("a_b") == "a_b"


def test_resolver_returns_first_matching_contact_and_skips_bots():
    store = ChatStateStore()
    store.add_contact(
        Contact(id="bot-x", username="a.b", name="Bot", is_bot=True, bot_type="chat")
    )
    store.add_contact(Contact(id="user-1", username="a_b", name="First"))
    store.add_contact(Contact(id="user-2", username="a-b", name="Second"))

    resolver = IdentityResolver(store)

    # Contacts are kept newest first.
    assert resolver.resolve_contact_for_address("a_b") == "user-2"
    assert resolver.resolve_contact_for_address("nobody") is None


def test_resolver_ignores_bot_only_matches():
    store = ChatStateStore()
    store.add_contact(
        Contact(
            id="bot-vision",
            username="vision_ai",
            name="Vision",
            is_bot=True,
            bot_type="vision",
        )
    )
    assert IdentityResolver(store).resolve_contact_for_address("vision_ai") is None
