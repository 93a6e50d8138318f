from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TextIO


INFO = "info"
WARN = "warn"
ERROR = "error"

_LEVEL_RANK = {INFO: 0, WARN: 1, ERROR: 2}

# Event kinds
PROGRESS = "progress"
FILE_SKIPPED = "file_skipped"
LAYER_BUILT = "layer_built"
SIZE_WARNING = "size_warning"
DOCUMENT_WRITTEN = "document_written"
KEY_FILE_WRITTEN = "key_file_written"
CONVERSION_FAILED = "conversion_failed"
NOTICE = "notice"


@dataclass(frozen=True)
class Event:
    kind: str
    level: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)


class EventSink:
    """Receives discrete pipeline events. Subclasses decide what to do with them."""

    def emit(self, event: Event) -> None:
        raise NotImplementedError

    # Convenience helpers
    def info(self, kind: str, message: str, **context: Any) -> None:
        self.emit(Event(kind, INFO, message, context))

    def warn(self, kind: str, message: str, **context: Any) -> None:
        self.emit(Event(kind, WARN, message, context))

    def error(self, kind: str, message: str, **context: Any) -> None:
        self.emit(Event(kind, ERROR, message, context))


class NullSink(EventSink):
    def emit(self, event: Event) -> None:
        return None


class CollectingSink(EventSink):
    """Keeps every event in memory, mostly for tests."""

    def __init__(self):
        self.events: List[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_kind(self, kind: str) -> List[Event]:
        return [e for e in self.events if e.kind == kind]


class ConsoleSink(EventSink):
    """Prints events the way the CLI reports: warnings/errors to stderr, the rest to stdout.

    Args:
        level: Minimum level to print ("info", "warn" or "error").
        progress: When False, progress events are dropped.
        quiet: Only warnings, errors and written-document summaries are printed.
    """

    def __init__(
        self,
        level: str = INFO,
        *,
        progress: bool = True,
        quiet: bool = False,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ):
        if level not in _LEVEL_RANK:
            raise ValueError(f"Unknown log level: {level}")
        self.min_rank = _LEVEL_RANK[level]
        self.progress = progress
        self.quiet = quiet
        self.out = out
        self.err = err

    def emit(self, event: Event) -> None:
        if _LEVEL_RANK.get(event.level, 0) < self.min_rank:
            return
        if event.kind == PROGRESS and (not self.progress or self.quiet):
            return
        if event.level == ERROR:
            print(f"Error: {event.message}", file=self.err or sys.stderr)
        elif event.level == WARN:
            print(f"Warning: {event.message}", file=self.err or sys.stderr)
        elif not self.quiet or event.kind == DOCUMENT_WRITTEN:
            print(f" {event.message}", file=self.out or sys.stdout, flush=True)
