from typing import Any


def text_part(text: str) -> dict[str, Any]:
    return {"text": text}


def inline_part(mime_type: str, data: str) -> dict[str, Any]:
    return {"inline_data": {"mime_type": mime_type, "data": data}}


class GeminiClient:
    def generate_content(
        self,
        *,
        api_key: str,
        model: str,
        contents: list[dict[str, Any]],
        post_json_request: Any,
        system_instruction: str | None = None,
    ) -> list[dict[str, Any]]:
        """Call ``generateContent`` and return the first candidate's parts.

        Inline data parts come back normalised to
        ``{"inline_data": {"mime_type": ..., "data": ...}}`` whichever casing
        the API used.
        """
        url = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
        payload: dict[str, Any] = {"contents": contents}
        if system_instruction:
            payload["system_instruction"] = {"parts": [text_part(system_instruction)]}
        data = post_json_request(url, {"x-goog-api-key": api_key}, payload)
        candidates = data.get("candidates", [])
        if not isinstance(candidates, list) or not candidates:
            raise RuntimeError("Gemini returned no candidates.")
        first = candidates[0]
        if not isinstance(first, dict):
            raise RuntimeError("Gemini response format was invalid.")
        content = first.get("content", {})
        if not isinstance(content, dict):
            raise RuntimeError("Gemini response content missing.")
        parts = content.get("parts", [])
        if not isinstance(parts, list) or not parts:
            raise RuntimeError("Gemini returned empty content.")

        normalized: list[dict[str, Any]] = []
        for part in parts:
            if not isinstance(part, dict):
                continue
            inline = part.get("inline_data") or part.get("inlineData")
            if isinstance(inline, dict):
                data_value = str(inline.get("data", ""))
                if data_value:
                    mime = inline.get("mime_type") or inline.get("mimeType") or ""
                    normalized.append(inline_part(str(mime), data_value))
                continue
            text = part.get("text")
            if isinstance(text, str) and text:
                normalized.append(text_part(text))
        if not normalized:
            raise RuntimeError("Gemini response did not contain text or images.")
        return normalized

    def generate_text(
        self,
        *,
        api_key: str,
        model: str,
        contents: list[dict[str, Any]],
        post_json_request: Any,
        system_instruction: str | None = None,
    ) -> str:
        parts = self.generate_content(
            api_key=api_key,
            model=model,
            contents=contents,
            post_json_request=post_json_request,
            system_instruction=system_instruction,
        )
        text = "".join(str(part.get("text", "")) for part in parts).strip()
        if not text:
            raise RuntimeError("Gemini response did not contain text.")
        return text
