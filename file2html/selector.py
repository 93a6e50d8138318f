from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from .errors import ConfigError, FileTooLarge, FilterNoMatch, InputNotFound
from .events import EventSink, NullSink, FILE_SKIPPED, PROGRESS
from .pathutil import norm_path


OVERSIZE_SKIP = "skip"
OVERSIZE_ABORT = "abort"

_INVALID_PATTERN_CHARS = set('\\:"<>|')


@dataclass(frozen=True)
class InputEntry:
    """One selected file: its archive-relative path, source path and size."""

    relative_path: str
    absolute_source: str
    byte_length: int
    mtime: Optional[float] = None

    @property
    def name(self) -> str:
        return self.relative_path.rpartition("/")[2]

    @property
    def relative_dir(self) -> str:
        return self.relative_path.rpartition("/")[0]


@dataclass(frozen=True)
class FilterSpec:
    include_patterns: Tuple[str, ...] = ("*",)
    exclude_patterns: Tuple[str, ...] = ()
    max_size_bytes: Optional[int] = None
    oversize_policy: str = OVERSIZE_SKIP

    def matches(self, relative_path: str) -> bool:
        """Exclude wins over include; an empty include list matches nothing."""
        if any(pattern_matches(p, relative_path) for p in self.exclude_patterns):
            return False
        return any(pattern_matches(p, relative_path) for p in self.include_patterns)


def pattern_matches(pattern: str, relative_path: str) -> bool:
    """Case-sensitive glob match against the file name, or the full path if the
    pattern contains a '/'.

    ``relative_path`` is relative to the input root. Only ``*`` and ``?`` are
    wildcards; brackets match themselves.
    """
    target = relative_path if "/" in pattern else relative_path.rpartition("/")[2]
    return fnmatch.fnmatchcase(target, pattern.replace("[", "[[]"))


def validate_patterns(patterns: Iterable[str], kind: str = "include") -> List[str]:
    out = []
    for p in patterns:
        p = p.strip()
        if not p or any(ch in _INVALID_PATTERN_CHARS for ch in p):
            raise ConfigError(f"Invalid {kind} pattern: {p!r}", operation="validate-patterns")
        out.append(p)
    return out


@dataclass
class Selection:
    root: str
    entries: List[InputEntry] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def total_size(self) -> int:
        return sum(e.byte_length for e in self.entries)

    def require_matches(self) -> "Selection":
        if not self.entries:
            raise FilterNoMatch("No files matched the include/exclude filters", path=self.root, operation="select")
        return self


def _iter_candidates(root: str) -> Iterable[Tuple[str, str, str]]:
    """Yield (archive path, path relative to root, filesystem path) in sorted order."""
    root = os.path.abspath(root)
    if os.path.isfile(root):
        name = os.path.basename(root)
        yield name, name, root
        return
    base = os.path.basename(root.rstrip(os.sep)) or "archive"
    for cur, dirnames, filenames in os.walk(root):
        # prune symlink directories to avoid walking into them
        dirnames[:] = sorted(d for d in dirnames if not os.path.islink(os.path.join(cur, d)))
        for f in sorted(filenames):
            full = os.path.join(cur, f)
            if not os.path.isfile(full):
                continue
            rel = norm_path(os.path.relpath(full, start=root))
            yield base + "/" + rel, rel, full


def select_files(root: str, spec: FilterSpec, sink: Optional[EventSink] = None) -> Selection:
    """Enumerate files under ``root`` that pass ``spec``.

    A bare file root yields one entry named after the file. A directory root
    yields entries prefixed with the directory name. Oversized files are skipped
    with a warning or raise FileTooLarge, depending on ``spec.oversize_policy``.

    Raises:
        InputNotFound: ``root`` does not exist.
        FileTooLarge: a matching file exceeds the size bound under the "abort" policy.
    """
    sink = sink or NullSink()
    if not os.path.exists(root):
        raise InputNotFound(f"Input path '{root}' does not exist", path=root, operation="select")
    if spec.oversize_policy not in (OVERSIZE_SKIP, OVERSIZE_ABORT):
        raise ConfigError(f"Unknown oversize policy: {spec.oversize_policy}", operation="select")

    selection = Selection(root=root)
    for rel, under_root, full in _iter_candidates(root):
        if not spec.matches(under_root):
            continue
        st = os.stat(full)
        size = st.st_size
        if spec.max_size_bytes is not None and size > spec.max_size_bytes:
            msg = f"{full} exceeds the size limit ({size} > {spec.max_size_bytes} bytes)"
            if spec.oversize_policy == OVERSIZE_ABORT:
                raise FileTooLarge(msg, path=full, operation="select")
            selection.skipped.append((rel, "too large"))
            sink.warn(FILE_SKIPPED, msg + ", skipping", path=full, size=size)
            continue
        selection.entries.append(
            InputEntry(relative_path=rel, absolute_source=full, byte_length=size, mtime=st.st_mtime)
        )
    sink.info(
        PROGRESS,
        f"Selected {len(selection.entries)} file(s), {selection.total_size} bytes",
        count=len(selection.entries),
        total_size=selection.total_size,
    )
    return selection


def max_size_bytes_from_mb(max_size_mb: Optional[float]) -> Optional[int]:
    if max_size_mb is None:
        return None
    if max_size_mb < 0:
        raise ConfigError("max_size_mb must not be negative", operation="validate-config")
    return int(max_size_mb * 1_048_576)


def filter_spec(
    include: Sequence[str] = ("*",),
    exclude: Sequence[str] = (),
    max_size_mb: Optional[float] = None,
    oversize_policy: str = OVERSIZE_SKIP,
) -> FilterSpec:
    return FilterSpec(
        include_patterns=tuple(validate_patterns(include, "include")),
        exclude_patterns=tuple(validate_patterns(exclude, "exclude")),
        max_size_bytes=max_size_bytes_from_mb(max_size_mb),
        oversize_policy=oversize_policy,
    )
