from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from .constants import (
    COMPRESSION_DEFLATED,
    COMPRESSION_STORED,
    ENCRYPTION_METHODS,
    ENCRYPTION_NONE,
)
from .errors import EncryptionFailure, File2HtmlError, InputNotFound, IOWriteFailure, PasswordEmpty
from .password import PasswordSpec
from .selector import InputEntry
from .zipwriter import ZipArchiveWriter


@dataclass(frozen=True)
class LayerSpec:
    encryption_method: str = "aes256"
    compression: str = COMPRESSION_DEFLATED
    password: PasswordSpec = field(default_factory=PasswordSpec.random)

    def __post_init__(self):
        if self.encryption_method != ENCRYPTION_NONE and self.encryption_method not in ENCRYPTION_METHODS:
            raise ValueError(f"Unsupported encryption method: {self.encryption_method}")
        if self.compression not in (COMPRESSION_STORED, COMPRESSION_DEFLATED):
            raise ValueError(f"Unsupported compression: {self.compression}")

    @property
    def effective_method(self) -> str:
        """A ``none`` password disables encryption whatever the method says."""
        return self.encryption_method if self.password.encrypts else ENCRYPTION_NONE


@dataclass(frozen=True)
class BuiltArchive:
    data: bytes
    entry_name: str
    password_used: str = ""
    encryption_method: str = ENCRYPTION_NONE
    entry_count: int = 0

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def encrypted(self) -> bool:
        return self.encryption_method != ENCRYPTION_NONE

    def __repr__(self) -> str:
        return (
            f"BuiltArchive(entry_name={self.entry_name!r}, size={self.size}, "
            f"encryption_method={self.encryption_method!r}, entry_count={self.entry_count})"
        )


ArchiveSource = Union[Sequence[InputEntry], BuiltArchive]


def build_archive(
    source: ArchiveSource,
    compression: str,
    encryption_method: str,
    password: str,
    entry_name: str,
    *,
    layer: Optional[int] = None,
) -> BuiltArchive:
    """Serialize ``source`` into one ZIP archive.

    ``source`` is either the selected input entries or a single prior
    BuiltArchive, which is stored verbatim as one entry named after its
    ``entry_name``. With an AES method every entry is encrypted under
    ``password``. ``entry_name`` names the returned archive for whoever
    wraps or downloads it next.

    Raises:
        PasswordEmpty: encryption requested without a password.
        EncryptionFailure: key derivation or cipher setup failed.
        IOWriteFailure: an input could not be read or the archive could not be assembled.
    """
    encrypting = encryption_method != ENCRYPTION_NONE
    if encrypting and not password:
        raise PasswordEmpty("Encryption requested without a password", layer=layer, operation="build")
    try:
        writer = ZipArchiveWriter(
            compression=compression,
            encryption_method=encryption_method,
            password=password if encrypting else None,
        )
    except ValueError as exc:
        raise EncryptionFailure(str(exc), layer=layer, operation="cipher-setup") from exc
    except File2HtmlError as exc:
        exc.layer = layer if exc.layer is None else exc.layer
        raise

    count = 0
    with writer:
        if isinstance(source, BuiltArchive):
            _add(writer, source.entry_name, source.data, layer=layer)
            count = 1
        else:
            for entry in source:
                _add(writer, entry.relative_path, _read_entry(entry, layer=layer), layer=layer, mtime=entry.mtime)
                count += 1
        try:
            data = writer.finalize()
        except (OSError, ValueError) as exc:
            raise IOWriteFailure(f"Failed to finalize archive: {exc}", layer=layer, operation="build") from exc

    return BuiltArchive(
        data=data,
        entry_name=entry_name,
        password_used=password if encrypting else "",
        encryption_method=encryption_method if encrypting else ENCRYPTION_NONE,
        entry_count=count,
    )


def _read_entry(entry: InputEntry, *, layer: Optional[int]) -> bytes:
    try:
        with open(entry.absolute_source, "rb") as fh:
            return fh.read()
    except FileNotFoundError as exc:
        raise InputNotFound("Input file disappeared", path=entry.absolute_source, layer=layer, operation="read") from exc
    except OSError as exc:
        raise IOWriteFailure(f"Cannot read input: {exc}", path=entry.absolute_source, layer=layer, operation="read") from exc


def _add(writer: ZipArchiveWriter, arc_path: str, data: bytes, *, layer: Optional[int], mtime: Optional[float] = None) -> None:
    try:
        writer.add_bytes(arc_path, data, mtime=mtime)
    except File2HtmlError as exc:
        if exc.layer is None:
            exc.layer = layer
        raise
    except ValueError as exc:
        raise IOWriteFailure(str(exc), path=arc_path, layer=layer, operation="build") from exc
