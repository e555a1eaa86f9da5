import asyncio

from dependency_injector import providers  # type: ignore[import-not-found]

import chat
from peer_chat.container import PeerChatContainer
from peer_chat.repositories import ConfigRepository, MemoryKeyValueStore
from peer_chat.services import EndpointState
from peer_chat.transport import LoopbackNetwork, TcpNetwork


def _settings(**overrides) -> dict:
    settings = ConfigRepository().get_default_config()
    settings["transport"] = "loopback"
    settings["gemini"]["api_key"] = "k"
    settings.update(overrides)
    return settings


def _app(network: LoopbackNetwork | None = None, **overrides) -> chat.PeerChatApp:
    container = PeerChatContainer()
    container.kv_store.override(providers.Object(MemoryKeyValueStore()))
    if network is not None:
        container.network.override(providers.Object(network))
    return chat.PeerChatApp(_settings(**overrides), container=container)


async def _settle(*apps) -> None:
    for app in apps:
        await app.session_service.wait_idle()
    for _ in range(20):
        await asyncio.sleep(0)


def test_container_selects_transport_from_settings():
    loopback_app = _app()
    assert isinstance(loopback_app.session_service.network, LoopbackNetwork)

    tcp_app = _app(
        transport="tcp", peers={"nova": ("127.0.0.1", 9999)}, listen_port=0
    )
    network = tcp_app.session_service.network
    assert isinstance(network, TcpNetwork)
    assert network.directory == {"nova": ("127.0.0.1", 9999)}


def test_container_shares_singletons_between_services():
    app = _app()
    assert app.outbound_service.store is app.store
    assert app.session_service.registry is app.outbound_service.registry
    assert app.contact_service.session is app.session_service
    assert app.outbound_service.responder.settings["api_key"] == "k"


def test_two_apps_chat_through_commands():
    async def scenario():
        network = LoopbackNetwork()
        alice = _app(network)
        bob = _app(network)
        for app, name in ((alice, "alice"), (bob, "bob")):
            app.prepare()
            app.contact_service.create_profile(name, name.title())
            assert await app.start() == EndpointState.READY

        await bob.controller.submit("/add alice")
        await _settle(alice, bob)
        await bob.controller.submit("hello alice")
        await _settle(alice, bob)
        return alice, bob

    alice, bob = asyncio.run(scenario())
    contact = alice.store.find_contact_by_username("bob")
    assert contact is not None
    assert [m.content for m in alice.store.history(contact.id)] == ["hello alice"]
    assert contact.unread_count == 1
    assert bob.store.contacts[0].last_message == "hello alice"


def test_controller_reports_problems_as_notices():
    async def scenario():
        app = _app()
        app.prepare()
        app.contact_service.create_profile("bob")
        await app.controller.submit("hi")
        await app.controller.submit("/nope")
        await app.controller.submit("/add")
        await app.controller.submit("/react 1")
        return app

    app = asyncio.run(scenario())
    notices = app.controller.notices
    assert "Open a conversation first" in notices[0]
    assert "Unknown command '/nope'" in notices[1]
    assert "Usage: /add" in notices[2]
    assert "Open a conversation first" in notices[3]


def test_controller_renders_focused_conversation():
    async def scenario():
        app = _app()
        app.prepare()
        app.contact_service.create_profile("bob")
        await app.controller.submit("/add nova")
        await app.controller.submit("first message")
        await app.controller.submit("/react 1 👍")
        return app

    app = asyncio.run(scenario())
    text, title = app.controller.render_conversation()
    assert title.startswith("nova (@nova, offline)")
    assert "you: first message  👍" in text
    fragments = app.controller.render_sidebar()
    assert any("nova" in fragment for _style, fragment in fragments)


def test_load_settings_applies_command_line_overrides(tmp_path):
    args = chat.build_parser().parse_args(
        [
            "--config",
            str(tmp_path / "missing.json"),
            "--transport",
            "loopback",
            "--data-dir",
            str(tmp_path / "store"),
            "--port",
            "9999",
        ]
    )
    settings = chat.load_settings(args)
    assert settings["transport"] == "loopback"
    assert settings["data_dir"] == str(tmp_path / "store")
    assert settings["listen_port"] == 9999


def test_controller_styles_conversation_lines():
    controller = _app().controller
    assert controller.lex_line("  3 09:15 you: hi: there") == [
        ("class:timestamp", "  3 09:15 "),
        ("class:self", "you"),
        ("", ": hi: there"),
    ]
    assert controller.lex_line("  4 09:16 Nova: yo")[1] == ("class:peer", "Nova")
    assert controller.lex_line("* 'ghost' is not reachable") == [
        ("class:notice", "* 'ghost' is not reachable")
    ]
    assert controller.lex_line("") == [("", "")]
