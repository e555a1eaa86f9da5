import argparse
import asyncio
import logging
from typing import Any

from peer_chat.container import PeerChatContainer
from peer_chat.constants import CONFIG_FILE
from peer_chat.controller import ChatController
from peer_chat.repositories import ConfigRepository
from peer_chat.services import EndpointState
from peer_chat.view import PromptToolkitView

logger = logging.getLogger(__name__)


class PeerChatApp:
    def __init__(
        self,
        settings: dict[str, Any] | None = None,
        container: PeerChatContainer | None = None,
    ):
        if settings is None:
            settings = ConfigRepository().load_settings()
        self.settings = settings
        self.container = container or PeerChatContainer()
        self.container.config.from_dict(self.settings)

        self.event_bus = self.container.event_bus()
        self.store = self.container.store()
        self.registry = self.container.registry()
        self.session_service = self.container.session_service()
        self.outbound_service = self.container.outbound_service()
        self.contact_service = self.container.contact_service()
        self.controller = ChatController(self)
        self.view: PromptToolkitView | None = None

    def prepare(self) -> None:
        self.store.load()

    async def start(self) -> EndpointState:
        state = await self.session_service.start()
        if state == EndpointState.FAULTED:
            logger.warning("Running without peer connections.")
        return state

    async def stop(self) -> None:
        await self.session_service.stop()
        self.event_bus.stop()

    def exit(self, result: str | None = None) -> None:
        if self.view is not None:
            self.view.exit(result)

    async def run_async(self) -> Any:
        self.view = PromptToolkitView(
            self.controller, on_submit=self.controller.handle_input
        )
        self.controller.loop = asyncio.get_running_loop()
        self.controller.register_event_handlers(self.event_bus)
        self.event_bus.start()
        await self.start()
        self.controller.refresh()
        try:
            return await self.view.run_async()
        finally:
            await self.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Peer-to-peer terminal chat.")
    parser.add_argument("--config", default=CONFIG_FILE, help="Path to the JSON config")
    parser.add_argument("--transport", choices=["tcp", "loopback"])
    parser.add_argument("--data-dir", help="Where chats and contacts are stored")
    parser.add_argument("--port", type=int, help="TCP port to listen on")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def load_settings(args: argparse.Namespace) -> dict[str, Any]:
    settings = ConfigRepository(config_file=args.config).load_settings()
    if args.transport:
        settings["transport"] = args.transport
    if args.data_dir:
        settings["data_dir"] = args.data_dir
    if args.port is not None:
        settings["listen_port"] = args.port
    return settings


def ensure_profile(app: PeerChatApp) -> None:
    if app.store.profile is not None:
        return
    username = ""
    while not username:
        username = input("Choose a username: ").strip()
    display_name = input(f"Display name [Default: {username}]: ").strip()
    app.contact_service.create_profile(username, display_name or username)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    app = PeerChatApp(load_settings(args))
    app.prepare()
    try:
        ensure_profile(app)
        result = asyncio.run(app.run_async())
    except (KeyboardInterrupt, EOFError):
        return 130
    if result == "reset":
        print("Local data removed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
