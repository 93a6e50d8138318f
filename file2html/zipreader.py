from __future__ import annotations

import os
import struct
import zlib
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

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
    ZIP32_LIMIT,
    AES_EXTRA_ID,
    AES_VENDOR_ID,
    AES_VENDOR_AE1,
)
from .errors import ArchiveReadError, WrongPassword
from .pathutil import norm_path, to_fs_relative
from .winzip_aes import WinZipAES


_LOCAL_HDR = struct.Struct("<IHHHHHIIIHH")
_CENTRAL_HDR = struct.Struct("<IHHHHHHIIIHHHHHII")
_EOCD = struct.Struct("<IHHHHIIH")
_ZIP64_EOCD = struct.Struct("<IQHHIIQQQQ")
_ZIP64_LOCATOR = struct.Struct("<IIQI")
_EXTRA_HDR = struct.Struct("<HH")
_AES_EXTRA_BODY = struct.Struct("<H2sBH")

_MAX_EOCD_SEARCH = _EOCD.size + 0xFFFF


@dataclass
class ZipEntryInfo:
    name: str
    flags: int
    method: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    offset: int
    external_attr: int = 0
    aes_strength: Optional[int] = None
    aes_vendor_version: Optional[int] = None
    actual_method: Optional[int] = None

    @property
    def encrypted(self) -> bool:
        return bool(self.flags & GPF_ENCRYPTED)

    @property
    def is_dir(self) -> bool:
        return self.name.endswith("/")


def _parse_extra(extra: bytes, info: ZipEntryInfo) -> None:
    pos = 0
    while pos + _EXTRA_HDR.size <= len(extra):
        header_id, size = _EXTRA_HDR.unpack_from(extra, pos)
        body = extra[pos + _EXTRA_HDR.size : pos + _EXTRA_HDR.size + size]
        pos += _EXTRA_HDR.size + size
        if header_id == AES_EXTRA_ID and len(body) >= _AES_EXTRA_BODY.size:
            version, vendor, strength, actual = _AES_EXTRA_BODY.unpack_from(body)
            if vendor != AES_VENDOR_ID:
                raise ArchiveReadError("Unknown AES vendor id", path=info.name, operation="zip-read")
            info.aes_vendor_version = version
            info.aes_strength = strength
            info.actual_method = actual
        elif header_id == 0x0001:
            # ZIP64 extended information: only fields saturated in the header are present
            values = list(struct.unpack_from(f"<{len(body) // 8}Q", body)) if len(body) >= 8 else []
            if info.uncompressed_size == ZIP32_LIMIT and values:
                info.uncompressed_size = values.pop(0)
            if info.compressed_size == ZIP32_LIMIT and values:
                info.compressed_size = values.pop(0)
            if info.offset == ZIP32_LIMIT and values:
                info.offset = values.pop(0)


class ZipArchiveReader:
    """Reads ZIP archives held in memory, including WinZip AES entries."""

    def __init__(self, data: bytes, password: Optional[str] = None):
        self.data = data
        self.password = password
        self.entries: List[ZipEntryInfo] = []
        self._by_name: Dict[str, ZipEntryInfo] = {}
        self._load_central_directory()

    @classmethod
    def from_path(cls, path: str, password: Optional[str] = None) -> "ZipArchiveReader":
        with open(path, "rb") as fh:
            return cls(fh.read(), password=password)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.data = b""

    def _locate_end(self):
        data = self.data
        start = max(0, len(data) - _MAX_EOCD_SEARCH)
        pos = data.rfind(struct.pack("<I", END_OF_CENTRAL_DIR_SIG), start)
        if pos < 0 or pos + _EOCD.size > len(data):
            raise ArchiveReadError("End of central directory not found", operation="zip-read")
        _sig, _disk, _cd_disk, _n_disk, count, cd_size, cd_offset, _clen = _EOCD.unpack_from(data, pos)
        loc = pos - _ZIP64_LOCATOR.size
        if loc >= 0 and struct.unpack_from("<I", data, loc)[0] == ZIP64_END_LOCATOR_SIG:
            _lsig, _ldisk, z64_offset, _disks = _ZIP64_LOCATOR.unpack_from(data, loc)
            if z64_offset + _ZIP64_EOCD.size > len(data):
                raise ArchiveReadError("ZIP64 end record out of bounds", operation="zip-read")
            fields = _ZIP64_EOCD.unpack_from(data, z64_offset)
            if fields[0] != ZIP64_END_OF_CENTRAL_DIR_SIG:
                raise ArchiveReadError("Bad ZIP64 end record signature", operation="zip-read")
            count, cd_size, cd_offset = fields[7], fields[8], fields[9]
        return count, cd_size, cd_offset

    def _load_central_directory(self):
        data = self.data
        count, cd_size, cd_offset = self._locate_end()
        if cd_offset + cd_size > len(data):
            raise ArchiveReadError("Central directory out of bounds", operation="zip-read")
        pos = cd_offset
        for _ in range(count):
            if pos + _CENTRAL_HDR.size > len(data):
                raise ArchiveReadError("Truncated central directory", operation="zip-read")
            (
                sig,
                _made_by,
                _needed,
                flags,
                method,
                _mtime,
                _mdate,
                crc,
                csize,
                usize,
                name_len,
                extra_len,
                comment_len,
                _disk,
                _iattr,
                eattr,
                offset,
            ) = _CENTRAL_HDR.unpack_from(data, pos)
            if sig != CENTRAL_DIR_HEADER_SIG:
                raise ArchiveReadError("Bad central directory signature", operation="zip-read")
            pos += _CENTRAL_HDR.size
            raw_name = data[pos : pos + name_len]
            name = raw_name.decode("utf-8" if flags & GPF_UTF8 else "cp437")
            extra = data[pos + name_len : pos + name_len + extra_len]
            pos += name_len + extra_len + comment_len
            info = ZipEntryInfo(
                name=name,
                flags=flags,
                method=method,
                crc32=crc,
                compressed_size=csize,
                uncompressed_size=usize,
                offset=offset,
                external_attr=eattr,
            )
            _parse_extra(extra, info)
            self.entries.append(info)
            self._by_name[name] = info

    def list(self) -> List[ZipEntryInfo]:
        return list(self.entries)

    def names(self) -> List[str]:
        return [e.name for e in self.entries]

    def _body(self, info: ZipEntryInfo) -> bytes:
        data = self.data
        if info.offset + _LOCAL_HDR.size > len(data):
            raise ArchiveReadError("Local header out of bounds", path=info.name, operation="zip-read")
        fields = _LOCAL_HDR.unpack_from(data, info.offset)
        if fields[0] != LOCAL_FILE_HEADER_SIG:
            raise ArchiveReadError("Bad local header signature", path=info.name, operation="zip-read")
        name_len, extra_len = fields[9], fields[10]
        start = info.offset + _LOCAL_HDR.size + name_len + extra_len
        end = start + info.compressed_size
        if end > len(data):
            raise ArchiveReadError("Entry data out of bounds", path=info.name, operation="zip-read")
        return data[start:end]

    def read(self, entry: Union[str, ZipEntryInfo]) -> bytes:
        """Return the decrypted, decompressed bytes of one entry."""
        info = self._by_name.get(entry) if isinstance(entry, str) else entry
        if info is None:
            raise ArchiveReadError("No such entry", path=str(entry), operation="zip-read")
        body = self._body(info)
        method = info.method
        check_crc = True
        if info.encrypted:
            if method != METHOD_AES or info.aes_strength is None:
                raise ArchiveReadError("Only WinZip AES encryption is supported", path=info.name, operation="zip-read")
            if not self.password:
                raise WrongPassword("password required", path=info.name, operation="zip-decrypt")
            try:
                body = WinZipAES(self.password, info.aes_strength).decrypt(body)
            except ValueError as exc:
                if "incorrect password" in str(exc):
                    raise WrongPassword("incorrect password", path=info.name, operation="zip-decrypt") from exc
                raise ArchiveReadError(str(exc), path=info.name, operation="zip-decrypt") from exc
            method = info.actual_method
            check_crc = info.aes_vendor_version == AES_VENDOR_AE1
        if method == METHOD_STORED:
            out = body
        elif method == METHOD_DEFLATED:
            try:
                out = zlib.decompress(body, -15)
            except zlib.error as exc:
                raise ArchiveReadError(f"Inflate failed: {exc}", path=info.name, operation="zip-read") from exc
        else:
            raise ArchiveReadError(f"Unsupported compression method {method}", path=info.name, operation="zip-read")
        if len(out) != info.uncompressed_size:
            raise ArchiveReadError("Size mismatch", path=info.name, operation="zip-read")
        if check_crc and (zlib.crc32(out) & 0xFFFFFFFF) != info.crc32:
            raise ArchiveReadError("CRC mismatch", path=info.name, operation="zip-read")
        return out

    def read_all(self) -> Dict[str, bytes]:
        return {e.name: self.read(e) for e in self.entries if not e.is_dir}

    def extract_all(self, outdir: str) -> List[str]:
        """Extract every file entry under ``outdir``; returns the written paths."""
        written: List[str] = []
        for e in self.entries:
            if e.is_dir:
                continue
            try:
                rel = to_fs_relative(norm_path(e.name))
            except ValueError as exc:
                raise ArchiveReadError(str(exc), path=e.name, operation="extract") from exc
            target = os.path.join(outdir, rel)
            parent = os.path.dirname(target)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(target, "wb") as fh:
                fh.write(self.read(e))
            written.append(target)
        return written
