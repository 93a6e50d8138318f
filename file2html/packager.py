from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import DEFAULT_SIZE_WARNING_BYTES, ENCRYPTION_NONE
from .events import EventSink, NullSink, SIZE_WARNING
from .orchestrator import Completed


@dataclass(frozen=True)
class EmbedPayload:
    base64_text: str
    original_total_size: int
    final_archive_size: int
    passwords_by_layer: Tuple[str, ...]
    download_name: str = ""
    layer_count: int = 0
    encryption_method: str = ENCRYPTION_NONE

    @property
    def has_password(self) -> bool:
        return self.encryption_method != ENCRYPTION_NONE

    def __repr__(self) -> str:
        return (
            f"EmbedPayload(download_name={self.download_name!r}, final_archive_size={self.final_archive_size}, "
            f"layer_count={self.layer_count}, encryption_method={self.encryption_method!r})"
        )


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def package_payload(
    outcome: Completed,
    display_password: bool,
    *,
    size_warning_bytes: int = DEFAULT_SIZE_WARNING_BYTES,
    label: Optional[str] = None,
    sink: Optional[EventSink] = None,
) -> EmbedPayload:
    """Base64-encode the final bytes and attach size and password metadata.

    Base64 text longer than ``size_warning_bytes`` only produces a warning event;
    browsers get slow with large inline data but the page still works.
    Passwords are redacted to "" unless ``display_password`` is set.
    """
    sink = sink or NullSink()
    data = outcome.data
    text = encode_base64(data)
    if size_warning_bytes and len(text) > size_warning_bytes:
        sink.warn(
            SIZE_WARNING,
            f"Base64 payload is large ({len(text)} characters for {len(data)} bytes, advisory limit "
            f"{size_warning_bytes} characters); the page may be slow to open or download: {label or outcome.download_name}",
            size=len(data),
            encoded_size=len(text),
        )
    by_layer = {p.layer: p.value for p in outcome.passwords}
    passwords = tuple(
        by_layer.get(index, "") if display_password else "" for index in range(len(outcome.layers))
    )
    methods = {p.encryption_method for p in outcome.passwords}
    return EmbedPayload(
        base64_text=text,
        original_total_size=outcome.original_total_size,
        final_archive_size=len(data),
        passwords_by_layer=passwords,
        download_name=outcome.download_name,
        layer_count=len(outcome.layers),
        encryption_method=methods.pop() if len(methods) == 1 else (ENCRYPTION_NONE if not methods else "mixed"),
    )
