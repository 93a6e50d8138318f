from __future__ import annotations

import base64
import binascii
import html as _html
import os
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .errors import ArchiveReadError, PayloadNotFound
from .pathutil import norm_path, to_fs_relative
from .zipreader import ZipArchiveReader


_PAYLOAD_RE = re.compile(r'<textarea id="payload"[^>]*>([A-Za-z0-9+/=\s]*)</textarea>')
_LAYERS_RE = re.compile(r'<meta name="file2html-layers" content="(\d+)">')
_DOWNLOAD_RE = re.compile(r'id="download" href="#" download="([^"]*)"')


@dataclass
class DocumentPayload:
    data: bytes
    layer_count: int
    download_name: str


def extract_payload(html_text: str) -> DocumentPayload:
    """Pull the embedded archive (and its layer count and download name) out of a page."""
    m = _PAYLOAD_RE.search(html_text)
    if m is None:
        raise PayloadNotFound("No embedded Base64 payload found", operation="unpack")
    try:
        data = base64.b64decode("".join(m.group(1).split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadNotFound(f"Embedded payload is not valid Base64: {exc}", operation="unpack") from exc
    lm = _LAYERS_RE.search(html_text)
    dm = _DOWNLOAD_RE.search(html_text)
    return DocumentPayload(
        data=data,
        layer_count=int(lm.group(1)) if lm else 0,
        download_name=_html.unescape(dm.group(1)) if dm else "payload.bin",
    )


def peel_layers(data: bytes, layer_count: int, passwords: Sequence[Optional[str]] = ()) -> Dict[str, bytes]:
    """Open ``layer_count`` nested archives, outermost first, and return the inner files.

    ``passwords`` are given in the order they are needed (outer first). When
    fewer passwords than layers are given, the last one is reused.
    """
    if layer_count < 1:
        raise ArchiveReadError("Payload is not an archive", operation="unpack")
    current = data
    for depth in range(layer_count):
        if passwords:
            pw = passwords[depth] if depth < len(passwords) else passwords[-1]
        else:
            pw = None
        reader = ZipArchiveReader(current, password=pw)
        if depth == layer_count - 1:
            return reader.read_all()
        entries = [e for e in reader.list() if not e.is_dir]
        if len(entries) != 1:
            raise ArchiveReadError(
                f"Expected one nested archive, found {len(entries)} entries", layer=layer_count - 1 - depth, operation="unpack"
            )
        current = reader.read(entries[0])
    return {}


def unpack_document(
    html_path: str,
    outdir: str,
    *,
    passwords: Sequence[str] = (),
    extract: bool = False,
) -> List[str]:
    """Write the decoded artifact from ``html_path`` into ``outdir``.

    With ``extract`` the archive layers are opened and the original files are
    written instead. Returns the written paths.
    """
    with open(html_path, "r", encoding="utf-8") as fh:
        doc = extract_payload(fh.read())
    os.makedirs(outdir, exist_ok=True)
    if not extract or doc.layer_count == 0:
        target = os.path.join(outdir, os.path.basename(doc.download_name) or "payload.bin")
        with open(target, "wb") as fh:
            fh.write(doc.data)
        return [target]

    written: List[str] = []
    for name, content in peel_layers(doc.data, doc.layer_count, passwords).items():
        try:
            rel = to_fs_relative(norm_path(name))
        except ValueError as exc:
            raise ArchiveReadError(str(exc), path=name, operation="unpack") from exc
        target = os.path.join(outdir, rel)
        os.makedirs(os.path.dirname(target) or outdir, exist_ok=True)
        with open(target, "wb") as fh:
            fh.write(content)
        written.append(target)
    return written
