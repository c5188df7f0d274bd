# tests/test_payload.py
"""Tests for document payloads, the file encoder and chat history."""

from __future__ import annotations

import base64

import pytest


class TestDocumentPayload:
    def test_from_data_uri(self):
        from medimind.payload import DocumentPayload

        payload = DocumentPayload.from_data_uri("data:application/pdf;base64,JVBERi0xLjQ=", source_name="r.pdf")
        assert payload.mime_type == "application/pdf"
        assert payload.is_text is False
        assert payload.is_image is False
        assert payload.describe() == "r.pdf (application/pdf)"

    @pytest.mark.parametrize(
        "uri",
        ["", "hello", "data:image/png,abc", "data:;base64,abc", "data:image/png;base64,***"],
    )
    def test_invalid_data_uri(self, uri):
        from medimind.errors import CompositionError
        from medimind.payload import DocumentPayload

        with pytest.raises(CompositionError) as exc_info:
            DocumentPayload.from_data_uri(uri)
        assert exc_info.value.field == "payload"

    def test_from_text(self):
        from medimind.payload import DocumentPayload

        payload = DocumentPayload.from_text("Hb 11.2")
        assert payload.is_text
        assert payload.describe() == "<inline> (text/plain, 7 chars)"

    def test_empty_text_rejected(self):
        from medimind.errors import CompositionError
        from medimind.payload import DocumentPayload

        with pytest.raises(CompositionError):
            DocumentPayload.from_text("   ")


class TestEncodeFile:
    def test_image_becomes_data_uri(self, tmp_path):
        from medimind.payload import encode_file

        path = tmp_path / "rx.png"
        path.write_bytes(b"\x89PNG\r\n\x1a\nfake")
        payload = encode_file(path)
        assert payload.is_image
        assert payload.source_name == "rx.png"
        encoded = payload.data_uri.split(",", 1)[1]
        assert base64.b64decode(encoded) == b"\x89PNG\r\n\x1a\nfake"

    def test_text_file_becomes_text(self, tmp_path):
        from medimind.payload import encode_file

        path = tmp_path / "labs.txt"
        path.write_text("Glucose 98 mg/dL", encoding="utf-8")
        payload = encode_file(path)
        assert payload.is_text
        assert payload.text == "Glucose 98 mg/dL"

    def test_missing_file(self, tmp_path):
        from medimind.errors import CompositionError
        from medimind.payload import encode_file

        with pytest.raises(CompositionError, match="Cannot read"):
            encode_file(tmp_path / "nope.jpg")

    def test_empty_file(self, tmp_path):
        from medimind.errors import CompositionError
        from medimind.payload import encode_file

        path = tmp_path / "empty.jpg"
        path.write_bytes(b"")
        with pytest.raises(CompositionError, match="empty"):
            encode_file(path)


class TestChatHistory:
    def test_append_returns_new_log(self):
        from medimind.history import ChatHistory

        empty = ChatHistory()
        one = empty.append("user", "hi")
        assert len(empty) == 0
        assert len(one) == 1
        assert one.turns[0].speaker == "user"

    def test_from_messages_content_parts(self):
        from medimind.history import ChatHistory

        history = ChatHistory.from_messages(
            [
                {"role": "user", "content": [{"text": "What is"}, {"text": "aspirin?"}]},
                {"role": "assistant", "content": "A painkiller."},
            ]
        )
        assert [(t.speaker, t.text) for t in history.turns] == [
            ("user", "What is aspirin?"),
            ("model", "A painkiller."),
        ]

    def test_rejects_non_dict_messages(self):
        from medimind.history import ChatHistory

        with pytest.raises(ValueError):
            ChatHistory.from_messages(["hello"])
