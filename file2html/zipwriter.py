from __future__ import annotations

import io
import stat
import struct
import time
import zlib
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .constants import (
    LOCAL_FILE_HEADER_SIG,
    CENTRAL_DIR_HEADER_SIG,
    END_OF_CENTRAL_DIR_SIG,
    ZIP64_END_OF_CENTRAL_DIR_SIG,
    ZIP64_END_LOCATOR_SIG,
    GPF_ENCRYPTED,
    GPF_UTF8,
    METHOD_STORED,
    METHOD_DEFLATED,
    METHOD_AES,
    VERSION_STORED,
    VERSION_DEFLATED,
    VERSION_ZIP64,
    VERSION_AES,
    VERSION_MADE_BY,
    ZIP32_LIMIT,
    ZIP16_LIMIT,
    AES_EXTRA_ID,
    AES_VENDOR_ID,
    AES_VENDOR_AE2,
    ENCRYPTION_METHODS,
    ENCRYPTION_NONE,
    COMPRESSION_STORED,
    COMPRESSION_DEFLATED,
    DEFLATE_LEVEL,
)
from .errors import EncryptionFailure, IOWriteFailure
from .pathutil import norm_path
from .winzip_aes import WinZipAES


# Fields (little endian):
# signature u32, version_needed u16, flags u16, method u16, mod_time u16, mod_date u16,
# crc32 u32, compressed_size u32, uncompressed_size u32, name_len u16, extra_len u16
_LOCAL_HDR = struct.Struct("<IHHHHHIIIHH")
# signature u32, made_by u16, version_needed u16, flags u16, method u16, mod_time u16,
# mod_date u16, crc32 u32, compressed_size u32, uncompressed_size u32, name_len u16,
# extra_len u16, comment_len u16, disk_start u16, internal_attr u16, external_attr u32,
# local_header_offset u32
_CENTRAL_HDR = struct.Struct("<IHHHHHHIIIHHHHHII")
_EOCD = struct.Struct("<IHHHHIIH")
_ZIP64_EOCD = struct.Struct("<IQHHIIQQQQ")
_ZIP64_LOCATOR = struct.Struct("<IIQI")
# header id u16, data size u16, vendor version u16, vendor id[2], strength u8, method u16
_AES_EXTRA = struct.Struct("<HHH2sBH")


def dos_datetime(timestamp: Optional[float] = None) -> Tuple[int, int]:
    """Return (time, date) in MS-DOS format, clamped to the 1980..2107 range."""
    t = time.localtime(time.time() if timestamp is None else timestamp)
    if t.tm_year < 1980:
        return 0, (1 << 5) | 1
    year = min(t.tm_year, 2107)
    dos_time = (t.tm_hour << 11) | (t.tm_min << 5) | (t.tm_sec // 2)
    dos_date = ((year - 1980) << 9) | (t.tm_mon << 5) | t.tm_mday
    return dos_time, dos_date


def aes_extra_field(strength: int, actual_method: int) -> bytes:
    return _AES_EXTRA.pack(AES_EXTRA_ID, 7, AES_VENDOR_AE2, AES_VENDOR_ID, strength, actual_method)


@dataclass
class ZipEntryRecord:
    name: str
    flags: int
    method: int
    version_needed: int
    dos_time: int
    dos_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    extra: bytes
    external_attr: int
    offset: int


class ZipArchiveWriter:
    """In-memory ZIP writer with optional per-entry WinZip AES encryption.

    Every entry in one archive shares the compression setting and, when
    ``encryption_method`` is not ``"none"``, the password. ``finalize()`` returns
    the complete archive bytes; nothing is handed out before that.
    """

    def __init__(
        self,
        compression: str = COMPRESSION_DEFLATED,
        encryption_method: str = ENCRYPTION_NONE,
        password: Optional[str] = None,
        level: int = DEFLATE_LEVEL,
    ):
        if compression not in (COMPRESSION_STORED, COMPRESSION_DEFLATED):
            raise ValueError(f"Unsupported compression: {compression}")
        self.compression = compression
        self.level = level
        self.encryption_method = encryption_method
        self.cipher: Optional[WinZipAES] = None
        if encryption_method != ENCRYPTION_NONE:
            if encryption_method not in ENCRYPTION_METHODS:
                raise ValueError(f"Unsupported encryption method: {encryption_method}")
            if not password:
                raise ValueError("A password is required for AES encryption")
            try:
                self.cipher = WinZipAES(password, ENCRYPTION_METHODS[encryption_method])
            except RuntimeError as exc:
                raise EncryptionFailure(str(exc), operation="cipher-setup") from exc
        self.buf: Optional[io.BytesIO] = io.BytesIO()
        self.entries: List[ZipEntryRecord] = []
        self._names = set()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.buf = None

    def _compress(self, data: bytes) -> Tuple[int, bytes]:
        if self.compression == COMPRESSION_STORED:
            return METHOD_STORED, data
        co = zlib.compressobj(self.level, zlib.DEFLATED, -15)
        return METHOD_DEFLATED, co.compress(data) + co.flush()

    def add_bytes(self, arc_path: str, data: bytes, *, mtime: Optional[float] = None, mode: Optional[int] = None):
        """Compress, optionally encrypt, and append one entry."""
        if self.buf is None:
            raise RuntimeError("Archive already finalized")
        name = norm_path(arc_path)
        if not name:
            raise ValueError("Entry name may not be empty")
        if name in self._names:
            raise ValueError(f"Duplicate entry name: {name}")
        if len(data) >= ZIP32_LIMIT:
            raise IOWriteFailure("Entry too large for a ZIP32 archive", path=name, operation="zip-write")

        method, body = self._compress(data)
        crc = zlib.crc32(data) & 0xFFFFFFFF
        flags = 0
        extra = b""
        version = VERSION_DEFLATED if method == METHOD_DEFLATED else VERSION_STORED
        if self.cipher is not None:
            try:
                body = self.cipher.encrypt(body)
            except (ValueError, RuntimeError) as exc:
                raise EncryptionFailure(f"AES encryption failed: {exc}", path=name, operation="encrypt") from exc
            extra = aes_extra_field(self.cipher.strength, method)
            flags |= GPF_ENCRYPTED
            method = METHOD_AES
            version = VERSION_AES
            crc = 0  # AE-2 does not store the CRC
        try:
            raw_name = name.encode("ascii")
        except UnicodeEncodeError:
            raw_name = name.encode("utf-8")
            flags |= GPF_UTF8

        offset = self.buf.tell()
        if offset >= ZIP32_LIMIT or len(body) >= ZIP32_LIMIT:
            raise IOWriteFailure("Archive exceeds ZIP32 offset limits", path=name, operation="zip-write")
        dos_time, dos_date = dos_datetime(mtime)
        self.buf.write(
            _LOCAL_HDR.pack(
                LOCAL_FILE_HEADER_SIG,
                version,
                flags,
                method,
                dos_time,
                dos_date,
                crc,
                len(body),
                len(data),
                len(raw_name),
                len(extra),
            )
        )
        self.buf.write(raw_name)
        self.buf.write(extra)
        self.buf.write(body)
        file_mode = (mode if mode is not None else 0o644) & 0o7777
        self.entries.append(
            ZipEntryRecord(
                name=name,
                flags=flags,
                method=method,
                version_needed=version,
                dos_time=dos_time,
                dos_date=dos_date,
                crc32=crc,
                compressed_size=len(body),
                uncompressed_size=len(data),
                extra=extra,
                external_attr=((stat.S_IFREG | file_mode) << 16),
                offset=offset,
            )
        )
        self._names.add(name)

    def finalize(self) -> bytes:
        """Write the central directory and end records; return the archive bytes."""
        if self.buf is None:
            raise RuntimeError("Archive already finalized")
        cd_offset = self.buf.tell()
        for e in self.entries:
            raw_name = e.name.encode("utf-8" if e.flags & GPF_UTF8 else "ascii")
            self.buf.write(
                _CENTRAL_HDR.pack(
                    CENTRAL_DIR_HEADER_SIG,
                    VERSION_MADE_BY,
                    e.version_needed,
                    e.flags,
                    e.method,
                    e.dos_time,
                    e.dos_date,
                    e.crc32,
                    e.compressed_size,
                    e.uncompressed_size,
                    len(raw_name),
                    len(e.extra),
                    0,
                    0,
                    0,
                    e.external_attr,
                    e.offset,
                )
            )
            self.buf.write(raw_name)
            self.buf.write(e.extra)
        cd_end = self.buf.tell()
        cd_size = cd_end - cd_offset
        count = len(self.entries)

        if count >= ZIP16_LIMIT or cd_offset >= ZIP32_LIMIT or cd_size >= ZIP32_LIMIT:
            self.buf.write(
                _ZIP64_EOCD.pack(
                    ZIP64_END_OF_CENTRAL_DIR_SIG,
                    _ZIP64_EOCD.size - 12,
                    VERSION_MADE_BY,
                    VERSION_ZIP64,
                    0,
                    0,
                    count,
                    count,
                    cd_size,
                    cd_offset,
                )
            )
            self.buf.write(_ZIP64_LOCATOR.pack(ZIP64_END_LOCATOR_SIG, 0, cd_end, 1))
            self.buf.write(
                _EOCD.pack(
                    END_OF_CENTRAL_DIR_SIG,
                    0,
                    0,
                    min(count, ZIP16_LIMIT),
                    min(count, ZIP16_LIMIT),
                    min(cd_size, ZIP32_LIMIT),
                    min(cd_offset, ZIP32_LIMIT),
                    0,
                )
            )
        else:
            self.buf.write(_EOCD.pack(END_OF_CENTRAL_DIR_SIG, 0, 0, count, count, cd_size, cd_offset, 0))
        data = self.buf.getvalue()
        self.buf = None
        return data
