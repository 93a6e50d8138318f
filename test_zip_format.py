from __future__ import annotations

import io
import os
import struct
import tempfile
import unittest
import zipfile
from pathlib import Path

from file2html.constants import AES_EXTRA_ID, METHOD_AES, METHOD_DEFLATED, METHOD_STORED
from file2html.errors import ArchiveReadError, WrongPassword
from file2html.winzip_aes import _HAS_CRYPTODOME, WinZipAES, derive_keys
from file2html.zipreader import ZipArchiveReader
from file2html.zipwriter import ZipArchiveWriter, dos_datetime


SAMPLE = {
    "docs/readme.txt": b"hello world\n" * 200,
    "docs/notes/binary.bin": os.urandom(3000),
    "docs/empty.txt": b"",
}


def _build(compression: str = "deflated", method: str = "none", password=None, files=SAMPLE) -> bytes:
    with ZipArchiveWriter(compression=compression, encryption_method=method, password=password) as w:
        for name, data in files.items():
            w.add_bytes(name, data, mtime=1_700_000_000)
        return w.finalize()


@unittest.skipUnless(_HAS_CRYPTODOME, "PyCryptodomex not available")
class WinZipAESTests(unittest.TestCase):
    def test_roundtrip_each_strength(self):
        for strength, salt_size in ((1, 8), (2, 12), (3, 16)):
            cipher = WinZipAES("pw", strength)
            self.assertEqual(cipher.salt_size, salt_size)
            blob = cipher.encrypt(b"payload bytes")
            self.assertEqual(len(blob), len(b"payload bytes") + cipher.overhead())
            self.assertEqual(cipher.decrypt(blob), b"payload bytes")

    def test_key_material_sizes(self):
        enc_key, auth_key, verifier = derive_keys("secret", b"\x00" * 16, 3)
        self.assertEqual(len(enc_key), 32)
        self.assertEqual(len(auth_key), 32)
        self.assertEqual(len(verifier), 2)

    def test_fixed_salt_is_deterministic(self):
        cipher = WinZipAES("secret", 1)
        salt = b"12345678"
        self.assertEqual(cipher.encrypt(b"abc", salt=salt), cipher.encrypt(b"abc", salt=salt))
        self.assertNotEqual(cipher.encrypt(b"abc"), cipher.encrypt(b"abc"))

    def test_wrong_password_and_tamper(self):
        blob = WinZipAES("right", 3).encrypt(b"x" * 100)
        with self.assertRaisesRegex(ValueError, "incorrect password"):
            WinZipAES("wrong", 3).decrypt(blob)
        tampered = bytearray(blob)
        tampered[30] ^= 0x01
        with self.assertRaisesRegex(ValueError, "authentication failed"):
            WinZipAES("right", 3).decrypt(bytes(tampered))


class ZipWriterTests(unittest.TestCase):
    def test_stdlib_reads_plain_archives(self):
        for compression in ("stored", "deflated"):
            data = _build(compression)
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                self.assertIsNone(zf.testzip())
                self.assertEqual(sorted(zf.namelist()), sorted(SAMPLE))
                for name, content in SAMPLE.items():
                    self.assertEqual(zf.read(name), content)
                expected = zipfile.ZIP_STORED if compression == "stored" else zipfile.ZIP_DEFLATED
                self.assertTrue(all(i.compress_type == expected for i in zf.infolist()))

    def test_unicode_names(self):
        data = _build(files={"résumé/übersicht.txt": b"data"})
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            self.assertEqual(zf.namelist(), ["résumé/übersicht.txt"])
            self.assertTrue(zf.infolist()[0].flag_bits & 0x800)
        self.assertEqual(ZipArchiveReader(data).read("résumé/übersicht.txt"), b"data")

    def test_rejects_duplicate_and_empty_names(self):
        w = ZipArchiveWriter()
        w.add_bytes("a.txt", b"1")
        with self.assertRaises(ValueError):
            w.add_bytes("./a.txt", b"2")
        with self.assertRaises(ValueError):
            w.add_bytes("", b"2")

    def test_finalize_twice(self):
        w = ZipArchiveWriter()
        w.add_bytes("a.txt", b"1")
        w.finalize()
        with self.assertRaises(RuntimeError):
            w.finalize()

    def test_password_required_for_encryption(self):
        with self.assertRaises(ValueError):
            ZipArchiveWriter(encryption_method="aes256", password="")
        with self.assertRaises(ValueError):
            ZipArchiveWriter(encryption_method="des", password="x")

    def test_dos_datetime_floor(self):
        t, d = dos_datetime(0)
        self.assertEqual(d >> 9, 0)  # clamped to 1980
        self.assertEqual(t, 0)

    def test_empty_archive(self):
        data = _build(files={})
        self.assertEqual(len(data), 22)
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            self.assertEqual(zf.namelist(), [])


@unittest.skipUnless(_HAS_CRYPTODOME, "PyCryptodomex not available")
class AESArchiveTests(unittest.TestCase):
    def test_roundtrip_every_method_and_compression(self):
        for method in ("aes128", "aes192", "aes256"):
            for compression in ("stored", "deflated"):
                with self.subTest(method=method, compression=compression):
                    data = _build(compression, method, "Secr3tPass")
                    reader = ZipArchiveReader(data, password="Secr3tPass")
                    self.assertEqual(reader.read_all(), SAMPLE)
                    for info in reader.list():
                        self.assertTrue(info.encrypted)
                        self.assertEqual(info.method, METHOD_AES)
                        self.assertEqual(info.aes_vendor_version, 2)
                        expected = METHOD_STORED if compression == "stored" else METHOD_DEFLATED
                        self.assertEqual(info.actual_method, expected)

    def test_stdlib_lists_aes_archive(self):
        data = _build("deflated", "aes256", "pw")
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            infos = zf.infolist()
            self.assertEqual(sorted(i.filename for i in infos), sorted(SAMPLE))
            for info in infos:
                self.assertEqual(info.compress_type, METHOD_AES)
                self.assertTrue(info.flag_bits & 0x1)
                header_id, size = struct.unpack_from("<HH", info.extra)
                self.assertEqual((header_id, size), (AES_EXTRA_ID, 7))
                self.assertEqual(info.extra[6:8], b"AE")
                self.assertEqual(info.extra[8], 3)

    def test_wrong_or_missing_password(self):
        data = _build("deflated", "aes128", "right")
        with self.assertRaises(WrongPassword):
            ZipArchiveReader(data, password="wrong").read("docs/readme.txt")
        with self.assertRaises(WrongPassword) as ctx:
            ZipArchiveReader(data).read("docs/readme.txt")
        self.assertEqual(ctx.exception.message, "password required")

    def test_corrupted_ciphertext(self):
        data = bytearray(_build("stored", "aes256", "pw", files={"a.bin": b"A" * 512}))
        # local header (30) + name (5) + extra (11) + salt (16) + verifier (2), then ciphertext
        data[30 + 5 + 11 + 16 + 2 + 100] ^= 0xFF
        with self.assertRaises(ArchiveReadError) as ctx:
            ZipArchiveReader(bytes(data), password="pw").read("a.bin")
        self.assertNotIsInstance(ctx.exception, WrongPassword)


class ZipReaderTests(unittest.TestCase):
    def test_reads_stdlib_archive(self):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr("dir/", b"")
            zf.writestr("dir/a.txt", b"alpha" * 100)
            zf.writestr("b.txt", b"beta")
        reader = ZipArchiveReader(buf.getvalue())
        self.assertEqual(reader.read_all(), {"dir/a.txt": b"alpha" * 100, "b.txt": b"beta"})

    def test_garbage_input(self):
        with self.assertRaises(ArchiveReadError):
            ZipArchiveReader(b"not a zip file at all")

    def test_crc_mismatch(self):
        data = bytearray(_build("stored", files={"a.txt": b"abcdef"}))
        data[30 + 5] ^= 0x01
        with self.assertRaisesRegex(ArchiveReadError, "CRC mismatch"):
            ZipArchiveReader(bytes(data)).read("a.txt")

    def test_extract_all(self):
        data = _build()
        with tempfile.TemporaryDirectory() as tmp:
            written = ZipArchiveReader(data).extract_all(tmp)
            self.assertEqual(len(written), len(SAMPLE))
            for name, content in SAMPLE.items():
                self.assertEqual((Path(tmp) / name).read_bytes(), content)

    def test_from_path_context_manager(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "a.zip"
            path.write_bytes(_build())
            with ZipArchiveReader.from_path(str(path)) as reader:
                self.assertEqual(sorted(reader.names()), sorted(SAMPLE))


if __name__ == "__main__":
    unittest.main()
