from __future__ import annotations

from collections.abc import Callable
from typing import Any, TYPE_CHECKING

from prompt_toolkit.application import Application
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.layout.containers import (
    Float,
    FloatContainer,
    HSplit,
    VSplit,
    Window,
)
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.layout.layout import Layout
from prompt_toolkit.layout.menus import CompletionsMenu
from prompt_toolkit.lexers import Lexer
from prompt_toolkit.styles import Style
from prompt_toolkit.widgets import Frame, TextArea

from peer_chat.constants import CONSOLE_STYLE, REACTION_EMOJIS

if TYPE_CHECKING:
    from peer_chat.controller import ChatController


class SlashCompleter(Completer):
    """Completes command names, then contact references and reactions."""

    def __init__(self, controller: "ChatController"):
        self.controller = controller

    def get_completions(self, document: Any, complete_event: Any):
        text = document.text_before_cursor
        if not text.startswith("/"):
            return
        command, separator, rest = text.partition(" ")
        if not separator:
            candidates = sorted(self.controller.command_names())
            prefix = command
        elif command in {"/open", "/close"} and " " not in rest:
            store = self.controller.app.store
            candidates = [contact.username for contact in store.contacts]
            prefix = rest
        elif command == "/react" and rest.count(" ") == 1:
            candidates = list(REACTION_EMOJIS)
            prefix = rest.split(" ", 1)[1]
        else:
            return
        for value in candidates:
            if value.startswith(prefix):
                yield Completion(value, start_position=-len(prefix), display=value)


class ConversationLexer(Lexer):
    def __init__(self, controller: "ChatController"):
        self.controller = controller

    def lex_document(self, document):
        def line_fragments(line_number):
            return self.controller.lex_line(document.lines[line_number])

        return line_fragments


class PromptToolkitView:
    def __init__(self, controller: "ChatController", on_submit: Callable[[str], None]):
        self.controller = controller
        self.on_submit = on_submit

        self.conversation = TextArea(
            style="class:chat-area",
            focusable=False,
            wrap_lines=True,
            lexer=ConversationLexer(controller),
        )
        self.composer = TextArea(
            height=3,
            prompt="> ",
            style="class:input-area",
            multiline=False,
            wrap_lines=False,
            completer=SlashCompleter(controller),
            complete_while_typing=True,
        )
        self.composer.buffer.on_text_changed += self._draft_changed
        self.contacts_control = FormattedTextControl()
        self.conversation_frame = Frame(self.conversation, title="Conversation")

        bindings = KeyBindings()

        @bindings.add("enter")
        def _send(_event: Any) -> None:
            text = self.composer.text
            self.composer.text = ""
            self.on_submit(text)

        @bindings.add("tab")
        def _complete(event: Any) -> None:
            buffer = event.current_buffer
            state = buffer.complete_state
            if state is not None and state.completions:
                completion = state.current_completion or state.completions[0]
                buffer.apply_completion(completion)
                return
            buffer.start_completion(select_first=True)

        @bindings.add("c-c")
        def _quit(event: Any) -> None:
            event.app.exit()

        body = HSplit(
            [
                VSplit(
                    [
                        self.conversation_frame,
                        Frame(
                            Window(
                                content=self.contacts_control,
                                width=34,
                                style="class:sidebar",
                            ),
                            title="Contacts",
                        ),
                    ]
                ),
                Frame(self.composer, title="Message (/help for commands)"),
            ]
        )
        root = FloatContainer(
            content=body,
            floats=[
                Float(
                    xcursor=True,
                    ycursor=True,
                    content=CompletionsMenu(max_height=12, scroll_offset=1),
                )
            ],
        )
        self.application: Any = Application(
            layout=Layout(root, focused_element=self.composer),
            key_bindings=bindings,
            style=Style.from_dict(CONSOLE_STYLE),
            full_screen=True,
            mouse_support=True,
        )

    def _draft_changed(self, buffer: Any) -> None:
        if not buffer.text.startswith("/"):
            self.controller.handle_draft(buffer.text)

    def set_output(self, text: str, title: str) -> None:
        self.conversation.text = text
        self.conversation.buffer.cursor_position = len(text)
        self.conversation_frame.title = title
        self.invalidate()

    def set_sidebar(self, fragments: list[tuple[str, str]]) -> None:
        self.contacts_control.text = fragments
        self.invalidate()

    def invalidate(self) -> None:
        self.application.invalidate()

    async def run_async(self) -> Any:
        return await self.application.run_async()

    def exit(self, result: str | None = None) -> None:
        self.application.exit(result=result)
