from typing import Any, Protocol


class ProviderClient(Protocol):
    def generate_content(
        self,
        *,
        api_key: str,
        model: str,
        contents: list[dict[str, Any]],
        post_json_request: Any,
        system_instruction: str | None = None,
    ) -> list[dict[str, Any]]:
        pass

    def generate_text(
        self,
        *,
        api_key: str,
        model: str,
        contents: list[dict[str, Any]],
        post_json_request: Any,
        system_instruction: str | None = None,
    ) -> str:
        pass
