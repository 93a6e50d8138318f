from __future__ import annotations

import concurrent.futures as _fut
import os
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .config import ConversionConfig, validate_config
from .constants import COMPRESSION_STORED, KEY_FILE_SUFFIX
from .errors import File2HtmlError
from .events import (
    EventSink,
    NullSink,
    PROGRESS,
    FILE_SKIPPED,
    DOCUMENT_WRITTEN,
    KEY_FILE_WRITTEN,
    CONVERSION_FAILED,
)
from .html import render_document
from .orchestrator import Aborted, run_layers
from .output import WrittenDocument, key_file_text, write_document
from .packager import package_payload
from .password import Clock
from .pathutil import to_fs_relative
from .selector import InputEntry, select_files


@dataclass
class ConversionFailure:
    path: str
    error: File2HtmlError


@dataclass
class ConversionReport:
    documents: List[WrittenDocument] = field(default_factory=list)
    failures: List[ConversionFailure] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    processed_files: int = 0
    total_size: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures


def convert_entries(
    entries: Sequence[InputEntry],
    base_name: str,
    output_dir: str,
    cfg: ConversionConfig,
    *,
    compression: Optional[str] = None,
    clock: Optional[Clock] = None,
    rng=None,
    sink: Optional[EventSink] = None,
) -> WrittenDocument:
    """Run one pipeline instance: layers, payload, page, then the atomic write.

    Everything (entries, passwords, archive bytes) is local to this call, so
    independent calls can run concurrently.
    """
    sink = sink or NullSink()
    outcome = run_layers(cfg.layer_plan(compression), entries, base_name, clock=clock, rng=rng, sink=sink)
    if isinstance(outcome, Aborted):
        raise outcome.error
    display = cfg.show_password
    payload = package_payload(
        outcome,
        display,
        size_warning_bytes=cfg.size_warning_bytes,
        label=os.path.join(output_dir, base_name),
        sink=sink,
    )
    # the key file only exists for passwords the user neither chose nor sees on the page
    key_passwords = [] if display else [p for p in outcome.passwords if p.generated]
    key_name = base_name + KEY_FILE_SUFFIX if key_passwords else None
    html_text = render_document(payload, base_name, outcome.passwords, display, key_file_name=key_name)
    written = write_document(
        output_dir,
        base_name,
        html_text,
        key_file_text(key_passwords) if key_passwords else None,
    )
    sink.info(
        DOCUMENT_WRITTEN,
        f"Wrote {written.html_path} ({written.html_size} bytes)",
        path=written.html_path,
        size=written.html_size,
    )
    if written.key_path:
        sink.info(KEY_FILE_WRITTEN, f"Password saved to {written.key_path}", path=written.key_path)
    return written


def process_individual(
    cfg: ConversionConfig,
    *,
    clock: Optional[Clock] = None,
    rng=None,
    sink: Optional[EventSink] = None,
) -> ConversionReport:
    """One page per selected file, mirrored under ``cfg.output`` by relative directory."""
    sink = sink or NullSink()
    selection = select_files(cfg.input, cfg.filter_spec(), sink)
    report = ConversionReport(skipped=list(selection.skipped))
    if not selection.entries:
        sink.warn(FILE_SKIPPED, f"No files matched the filters under {cfg.input}", path=cfg.input)
        return report

    compression = cfg.compression_level if cfg.compress else COMPRESSION_STORED
    total = len(selection.entries)

    def _runner(entry: InputEntry) -> Tuple[InputEntry, Optional[WrittenDocument], Optional[File2HtmlError]]:
        out_dir = os.path.join(cfg.output, to_fs_relative(entry.relative_dir))
        try:
            doc = convert_entries(
                [entry], entry.name, out_dir, cfg, compression=compression, clock=clock, rng=rng, sink=sink
            )
        except File2HtmlError as exc:
            if exc.path is None:
                exc.path = entry.absolute_source
            return entry, None, exc
        return entry, doc, None

    with _fut.ThreadPoolExecutor(max_workers=max(1, int(cfg.jobs))) as ex:
        for index, (entry, doc, err) in enumerate(ex.map(_runner, selection.entries), start=1):
            if err is not None:
                report.failures.append(ConversionFailure(entry.absolute_source, err))
                sink.error(CONVERSION_FAILED, f"Failed to convert {entry.absolute_source}: {err}", path=entry.absolute_source)
            else:
                report.documents.append(doc)
                report.processed_files += 1
                report.total_size += entry.byte_length
            sink.info(PROGRESS, f"[{index}/{total}] {entry.relative_path}", done=index, total=total)
    return report


def process_compressed(
    cfg: ConversionConfig,
    *,
    clock: Optional[Clock] = None,
    rng=None,
    sink: Optional[EventSink] = None,
) -> ConversionReport:
    """One page for the whole selection, named after the input root.

    Raises:
        FilterNoMatch: nothing matched; a compressed page needs at least one file.
    """
    sink = sink or NullSink()
    selection = select_files(cfg.input, cfg.filter_spec(), sink).require_matches()
    base_name = os.path.basename(os.path.abspath(cfg.input).rstrip(os.sep)) or "archive"
    sink.info(
        PROGRESS,
        f"Packing {len(selection.entries)} file(s) into {base_name}",
        total=len(selection.entries),
    )
    doc = convert_entries(selection.entries, base_name, cfg.output, cfg, clock=clock, rng=rng, sink=sink)
    return ConversionReport(
        documents=[doc],
        skipped=list(selection.skipped),
        processed_files=len(selection.entries),
        total_size=selection.total_size,
    )


def execute_conversion(
    cfg: ConversionConfig,
    sink: Optional[EventSink] = None,
    *,
    clock: Optional[Clock] = None,
    rng=None,
) -> ConversionReport:
    """Validate ``cfg`` and run the requested mode."""
    validate_config(cfg)
    if cfg.is_compressed:
        return process_compressed(cfg, clock=clock, rng=rng, sink=sink)
    return process_individual(cfg, clock=clock, rng=rng, sink=sink)
