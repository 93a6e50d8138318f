from __future__ import annotations

import os
import tempfile
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .constants import HTML_SUFFIX, KEY_FILE_SUFFIX
from .errors import IOWriteFailure
from .orchestrator import AppliedPassword


# Serializes renames into place; concurrent conversions may target the same path.
_COMMIT_LOCK = threading.Lock()


def document_paths(output_dir: str, doc_name: str) -> Tuple[str, str]:
    """Return (html path, key file path) for a document base name."""
    html_path = os.path.join(output_dir, doc_name + HTML_SUFFIX)
    return html_path, os.path.join(output_dir, doc_name + KEY_FILE_SUFFIX)


def key_file_text(passwords: Sequence[AppliedPassword]) -> str:
    """One line per layer, innermost first: ``layer <n> (<method>): <password>``."""
    return "".join(f"layer {p.layer} ({p.encryption_method}): {p.value}\n" for p in sorted(passwords, key=lambda p: p.layer))


@dataclass
class WrittenDocument:
    html_path: str
    key_path: Optional[str] = None
    html_size: int = 0


def _stage(directory: str, final_name: str, data: bytes) -> str:
    fd, tmp = tempfile.mkstemp(prefix="." + final_name + ".", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
    except BaseException:
        _unlink_quietly(tmp)
        raise
    return tmp


def _unlink_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def write_document(
    output_dir: str,
    doc_name: str,
    html_text: str,
    key_text: Optional[str] = None,
) -> WrittenDocument:
    """Write ``<doc_name>.html`` (and ``<doc_name>.html.key`` when ``key_text`` is given).

    Both files are staged as temporaries next to their targets and renamed into
    place only when both are complete. On any failure, including interrupts,
    the temporaries are removed and no partial output is left behind. A page
    written without ``key_text`` removes any key file left by an earlier run.
    """
    html_path, key_path = document_paths(output_dir, doc_name)
    html_bytes = html_text.encode("utf-8")
    staged: List[Tuple[str, str]] = []
    try:
        os.makedirs(os.path.dirname(html_path) or ".", exist_ok=True)
        if key_text is not None:
            staged.append((_stage(os.path.dirname(key_path) or ".", os.path.basename(key_path), key_text.encode("utf-8")), key_path))
        staged.append((_stage(os.path.dirname(html_path) or ".", os.path.basename(html_path), html_bytes), html_path))
        committed: List[str] = []
        with _COMMIT_LOCK:
            try:
                for tmp, final in staged:
                    os.replace(tmp, final)
                    committed.append(final)
                # a key file from an earlier run no longer opens this page
                if key_text is None:
                    _unlink_quietly(key_path)
            except BaseException:
                for final in committed:
                    _unlink_quietly(final)
                raise
    except OSError as exc:
        raise IOWriteFailure(f"Failed to write document: {exc}", path=html_path, operation="write") from exc
    finally:
        for tmp, _final in staged:
            if os.path.exists(tmp):
                _unlink_quietly(tmp)
    return WrittenDocument(
        html_path=html_path,
        key_path=key_path if key_text is not None else None,
        html_size=len(html_bytes),
    )
