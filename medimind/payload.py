# medimind/payload.py
"""Document payloads handed to the extraction pipeline.

The pipeline never parses document bytes itself.  A :class:`DocumentPayload`
is an opaque reference: either a base64 data URI (images, PDFs) that is
forwarded to the model as media, or plain text that is inlined into the
prompt.  :func:`encode_file` is the file-to-payload encoder used by the CLI.
"""

from __future__ import annotations

import base64
import binascii
import mimetypes
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict

from medimind.errors import CompositionError

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>[A-Za-z0-9+/=\s]+)$")

# Read as text instead of being shipped as media.
_TEXT_SUFFIXES = {".txt", ".md", ".text", ".csv", ".json"}


class DocumentPayload(BaseModel):
    """An opaque, model-consumable reference to document content."""

    model_config = ConfigDict(frozen=True)

    mime_type: str
    data_uri: Optional[str] = None
    text: Optional[str] = None
    source_name: Optional[str] = None

    @classmethod
    def from_data_uri(cls, uri: str, *, source_name: str | None = None) -> "DocumentPayload":
        """Validate a ``data:<mime>;base64,<data>`` URI."""
        match = _DATA_URI_RE.match(str(uri or "").strip())
        if match is None:
            raise CompositionError(
                "Document must be a data URI of the form 'data:<mimetype>;base64,<encoded_data>'",
                field="payload",
            )
        try:
            base64.b64decode(match.group("data"), validate=False)
        except (binascii.Error, ValueError) as exc:
            raise CompositionError(f"Document data is not valid base64: {exc}", field="payload") from exc
        return cls(mime_type=match.group("mime"), data_uri=str(uri).strip(), source_name=source_name)

    @classmethod
    def from_text(cls, text: str, *, source_name: str | None = None) -> "DocumentPayload":
        if not str(text or "").strip():
            raise CompositionError("Document text is empty", field="payload")
        return cls(mime_type="text/plain", text=str(text), source_name=source_name)

    @property
    def is_text(self) -> bool:
        return self.text is not None

    @property
    def is_image(self) -> bool:
        return self.data_uri is not None and self.mime_type.startswith("image/")

    def describe(self) -> str:
        """Short human-readable description for logs and envelopes."""
        name = self.source_name or "<inline>"
        if self.is_text:
            return f"{name} ({self.mime_type}, {len(self.text or '')} chars)"
        return f"{name} ({self.mime_type})"


def encode_file(path: str | Path) -> DocumentPayload:
    """Read *path* into a :class:`DocumentPayload`.

    Text files become text payloads; everything else becomes a base64 data
    URI.  Unreadable or empty files raise :class:`CompositionError`.
    """
    p = Path(path)
    try:
        raw = p.read_bytes()
    except OSError as exc:
        raise CompositionError(f"Cannot read document {p}: {exc}", field="payload") from exc
    if not raw:
        raise CompositionError(f"Document {p} is empty", field="payload")

    if p.suffix.lower() in _TEXT_SUFFIXES:
        return DocumentPayload.from_text(raw.decode("utf-8", errors="replace"), source_name=p.name)

    mime, _ = mimetypes.guess_type(p.name)
    mime = mime or "application/octet-stream"
    encoded = base64.b64encode(raw).decode("ascii")
    return DocumentPayload(mime_type=mime, data_uri=f"data:{mime};base64,{encoded}", source_name=p.name)
