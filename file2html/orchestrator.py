from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from .builder import BuiltArchive, LayerSpec, build_archive
from .constants import COMPRESSION_DEFLATED, COMPRESSION_STORED, ENCRYPTION_NONE
from .errors import ConfigError, File2HtmlError, InputNotFound, IOWriteFailure, LayerPlanError
from .events import EventSink, NullSink, LAYER_BUILT
from .password import RANDOM, TIMESTAMP, Clock, PasswordSpec, generate_password
from .selector import InputEntry


LAYER_NONE = "none"
LAYER_SINGLE = "single"
LAYER_DOUBLE = "double"

LAYER_COUNTS = {LAYER_NONE: 0, LAYER_SINGLE: 1, LAYER_DOUBLE: 2}


@dataclass(frozen=True)
class LayerPlan:
    """Innermost-first layer specs; ``layers[0]`` wraps the original files."""

    layers: Tuple[LayerSpec, ...] = ()
    reuse_password: bool = False

    def __post_init__(self):
        if len(self.layers) > 2:
            raise ConfigError("At most two archive layers are supported", operation="plan")


def make_plan(
    layer: str,
    *,
    encryption_method: str = "aes256",
    compression: str = COMPRESSION_DEFLATED,
    passwords: Sequence[PasswordSpec] = (),
    reuse_password: bool = False,
) -> LayerPlan:
    """Map the user-facing layer option to a LayerPlan.

    ``passwords`` gives one spec per layer; a single spec applies to every layer.
    The outer layer of a double plan is Stored when the inner one is encrypted,
    since AES output does not compress.
    """
    if layer not in LAYER_COUNTS:
        raise ConfigError(f"Unknown layer option: {layer}", operation="plan")
    count = LAYER_COUNTS[layer]
    if count == 0:
        return LayerPlan((), reuse_password)
    specs = list(passwords) or [PasswordSpec.random()]
    if len(specs) > count:
        raise ConfigError(f"{len(specs)} passwords given for {count} layer(s)", operation="plan")
    while len(specs) < count:
        specs.append(specs[-1])
    inner = LayerSpec(encryption_method=encryption_method, compression=compression, password=specs[0])
    if count == 1:
        return LayerPlan((inner,), reuse_password)
    outer_compression = COMPRESSION_STORED if inner.effective_method != ENCRYPTION_NONE else compression
    outer = LayerSpec(encryption_method=encryption_method, compression=outer_compression, password=specs[1])
    return LayerPlan((inner, outer), reuse_password)


@dataclass(frozen=True)
class AppliedPassword:
    layer: int
    mode: str
    encryption_method: str
    value: str

    @property
    def generated(self) -> bool:
        return self.mode in (RANDOM, TIMESTAMP)

    def __repr__(self) -> str:
        return f"AppliedPassword(layer={self.layer}, mode={self.mode!r}, encryption_method={self.encryption_method!r})"


@dataclass
class Completed:
    """Terminal success state. ``archive`` is None for layer ``none`` pass-through."""

    data: bytes
    download_name: str
    archive: Optional[BuiltArchive] = None
    layers: List[BuiltArchive] = field(default_factory=list)
    passwords: List[AppliedPassword] = field(default_factory=list)
    original_total_size: int = 0

    @property
    def final_size(self) -> int:
        return len(self.data)


@dataclass
class Aborted:
    error: File2HtmlError


LayerOutcome = Union[Completed, Aborted]


def layer_entry_names(base_name: str, count: int) -> List[str]:
    """Names of each layer's archive, innermost first."""
    if count == 0:
        return []
    if count == 1:
        return [f"{base_name}.zip"]
    return [f"{base_name}.zip", f"{base_name}_outer.zip"]


def _passthrough(entries: Sequence[InputEntry]) -> Completed:
    if len(entries) != 1:
        raise LayerPlanError(
            f"Layer 'none' embeds a single file as-is; got {len(entries)} files",
            operation="plan",
        )
    entry = entries[0]
    try:
        with open(entry.absolute_source, "rb") as fh:
            data = fh.read()
    except FileNotFoundError as exc:
        raise InputNotFound("Input file disappeared", path=entry.absolute_source, operation="read") from exc
    except OSError as exc:
        raise IOWriteFailure(f"Cannot read input: {exc}", path=entry.absolute_source, operation="read") from exc
    return Completed(data=data, download_name=entry.name, original_total_size=len(data))


def build_layers(
    plan: LayerPlan,
    entries: Sequence[InputEntry],
    base_name: str,
    *,
    clock: Optional[Clock] = None,
    rng=None,
    sink: Optional[EventSink] = None,
) -> Completed:
    """Run the plan and return the Completed state, raising on failure.

    Layers are built strictly in order: the outer build consumes the inner
    archive's finished bytes. Each password is generated just before its layer
    is built.
    """
    sink = sink or NullSink()
    if not plan.layers:
        return _passthrough(entries)

    names = layer_entry_names(base_name, len(plan.layers))
    built: List[BuiltArchive] = []
    applied: List[AppliedPassword] = []
    source: Union[Sequence[InputEntry], BuiltArchive] = entries
    for index, spec in enumerate(plan.layers):
        method = spec.effective_method
        if method == ENCRYPTION_NONE:
            password = ""
        elif plan.reuse_password and applied:
            password = applied[0].value
        else:
            password = generate_password(spec.password, clock, rng, layer=index)
        archive = build_archive(source, spec.compression, method, password, names[index], layer=index)
        built.append(archive)
        if method != ENCRYPTION_NONE:
            applied.append(AppliedPassword(index, spec.password.mode, method, password))
        sink.info(
            LAYER_BUILT,
            f"Built layer {index} ({method}, {spec.compression}): {archive.entry_count} entr"
            f"{'y' if archive.entry_count == 1 else 'ies'}, {archive.size} bytes",
            layer=index,
            size=archive.size,
            encryption_method=method,
        )
        source = archive

    final = built[-1]
    return Completed(
        data=final.data,
        download_name=final.entry_name,
        archive=final,
        layers=built,
        passwords=applied,
        original_total_size=sum(e.byte_length for e in entries),
    )


def run_layers(
    plan: LayerPlan,
    entries: Sequence[InputEntry],
    base_name: str,
    *,
    clock: Optional[Clock] = None,
    rng=None,
    sink: Optional[EventSink] = None,
) -> LayerOutcome:
    """State-machine entry point: returns Completed or Aborted, never a partial archive.

    Failures are returned, not reported; the caller owns error reporting.
    """
    try:
        return build_layers(plan, entries, base_name, clock=clock, rng=rng, sink=sink)
    except File2HtmlError as exc:
        return Aborted(exc)
