import io
from unittest.mock import patch
from urllib import error as urlerror

import pytest

from peer_chat.providers.gemini import GeminiClient
from peer_chat.services.responder_service import post_json_request


def _response() -> dict:
    return {"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}


def test_gemini_uses_header_api_key_only():
    calls: list[tuple[str, dict[str, str]]] = []

    def fake_post(url: str, headers: dict[str, str], payload: dict) -> dict:
        calls.append((url, headers))
        return _response()

    client = GeminiClient()
    text = client.generate_text(
        api_key="secret-key",
        model="gemini-2.5-flash",
        contents=[{"role": "user", "parts": [{"text": "hi"}]}],
        post_json_request=fake_post,
    )
    assert text == "ok"
    assert len(calls) == 1
    assert "?key=" not in calls[0][0]
    assert calls[0][1] == {"x-goog-api-key": "secret-key"}


def test_gemini_propagates_http_errors():
    calls: list[str] = []

    def fake_post(url: str, headers: dict[str, str], payload: dict) -> dict:
        calls.append(url)
        raise RuntimeError("HTTP 403 from provider. API key invalid.")

    client = GeminiClient()
    with pytest.raises(RuntimeError, match="HTTP 403"):
        client.generate_content(
            api_key="secret-key",
            model="gemini-2.5-flash",
            contents=[],
            post_json_request=fake_post,
        )
    assert len(calls) == 1


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"candidates": []},
        {"candidates": ["nope"]},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"inline_data": {"data": ""}}]}}]},
    ],
)
def test_gemini_rejects_unusable_responses(data):
    with pytest.raises(RuntimeError):
        GeminiClient().generate_content(
            api_key="k",
            model="m",
            contents=[],
            post_json_request=lambda *_args: data,
        )


def test_generate_text_rejects_image_only_response():
    data = {
        "candidates": [
            {"content": {"parts": [{"inline_data": {"mime_type": "a/b", "data": "x"}}]}}
        ]
    }
    with pytest.raises(RuntimeError, match="did not contain text"):
        GeminiClient().generate_text(
            api_key="k", model="m", contents=[], post_json_request=lambda *_: data
        )


def test_post_json_request_wraps_http_error():
    http_error = urlerror.HTTPError(
        "https://example.test", 500, "boom", {}, io.BytesIO(b"server exploded")
    )
    with patch("urllib.request.urlopen", side_effect=http_error):
        with pytest.raises(RuntimeError, match="HTTP 500"):
            post_json_request("https://example.test", {}, {"a": 1})


def test_post_json_request_decodes_object_body():
    class FakeResponse:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def read(self):
            return b'{"ok": true}'

    with patch("urllib.request.urlopen", return_value=FakeResponse()) as opener:
        assert post_json_request("https://example.test", {"h": "v"}, {}) == {"ok": True}
    request = opener.call_args.args[0]
    assert request.get_header("Content-type") == "application/json"
    assert request.get_method() == "POST"
