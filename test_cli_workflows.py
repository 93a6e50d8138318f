from __future__ import annotations

import os
import json
import subprocess
import sys
import tempfile
import unittest
import zipfile
from pathlib import Path
from typing import Dict

from file2html.winzip_aes import _HAS_CRYPTODOME


def _build_fixture_tree(root: Path) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    (root / "docs" / "notes").mkdir(parents=True)
    content = b"hello world\n" * 20
    (root / "docs" / "readme.txt").write_bytes(content)
    files["docs/readme.txt"] = content

    bin_data = os.urandom(2048)
    (root / "docs" / "notes" / "binary.bin").write_bytes(bin_data)
    files["docs/notes/binary.bin"] = bin_data

    (root / "docs" / "notes" / "empty.txt").write_text("")
    files["docs/notes/empty.txt"] = b""
    return files


def _compare_extracted(files: Dict[str, bytes], dst: Path, prefix: str):
    for rel, content in files.items():
        path = dst / prefix / rel
        assert path.is_file(), f"Missing file: {path}"
        assert path.read_bytes() == content, f"File contents differ: {path}"


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None, stdin: str | None = None):
        cmd = [sys.executable, "-m", "file2html.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            input=stdin if stdin is not None else "",
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def make_workspace(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        root = Path(tmp.name)
        src = root / "project"
        src.mkdir()
        return root, src, _build_fixture_tree(src)

    @unittest.skipUnless(_HAS_CRYPTODOME, "PyCryptodomex not available")
    def test_compressed_double_manual_roundtrip(self):
        root, src, files = self.make_workspace()
        out = root / "out"
        proc = self.run_cli([
            "convert", str(src), "-o", str(out),
            "--mode", "compressed", "--layer", "double",
            "--password-mode", "manual", "--password", "p@ssw0rd",
        ])
        self.assertIn("Done:", proc.stdout)
        page = out / "project.html"
        self.assertTrue(page.exists())
        self.assertFalse((out / "project.html.key").exists())

        extract_dir = root / "extract"
        self.run_cli(["unpack", str(page), "--outdir", str(extract_dir), "--password", "p@ssw0rd"])
        _compare_extracted(files, extract_dir, "project")

        raw_dir = root / "raw"
        self.run_cli(["unpack", str(page), "--outdir", str(raw_dir)])
        outer = raw_dir / "project_outer.zip"
        with zipfile.ZipFile(outer) as zf:
            self.assertEqual(zf.namelist(), ["project.zip"])

    @unittest.skipUnless(_HAS_CRYPTODOME, "PyCryptodomex not available")
    def test_implicit_convert_individual_mode(self):
        root, src, files = self.make_workspace()
        out = root / "out"
        self.run_cli([str(src), "-o", str(out), "--layer", "single", "--password-mode", "timestamp", "--jobs", "2"])
        for rel in files:
            page = out / "project" / (rel + ".html")
            self.assertTrue(page.exists(), page)
            key = Path(str(page) + ".key")
            line = key.read_text(encoding="utf-8").strip()
            self.assertRegex(line, r"^layer 0 \(aes256\): \d{14}$")

        page = out / "project" / "docs" / "readme.txt.html"
        pw = (Path(str(page) + ".key")).read_text(encoding="utf-8").strip().rpartition(": ")[2]
        extract_dir = root / "extract"
        self.run_cli(["unpack", str(page), "--outdir", str(extract_dir), "--password", pw, "--quiet"])
        self.assertEqual((extract_dir / "project" / "docs" / "readme.txt").read_bytes(), files["docs/readme.txt"])

    def test_layer_none_and_unpack(self):
        root, src, files = self.make_workspace()
        out = root / "out"
        target = src / "docs" / "readme.txt"
        self.run_cli([
            "convert", str(target), "-o", str(out), "--layer", "none", "--password-mode", "none", "--no-progress",
        ])
        page = out / "readme.txt.html"
        self.assertIn("Password: not required", page.read_text(encoding="utf-8"))
        extract_dir = root / "extract"
        self.run_cli(["unpack", str(page), "--outdir", str(extract_dir)])
        self.assertEqual((extract_dir / "readme.txt").read_bytes(), files["docs/readme.txt"])

    @unittest.skipUnless(_HAS_CRYPTODOME, "PyCryptodomex not available")
    def test_default_config_and_show_config(self):
        root, src, _files = self.make_workspace()
        out = root / "out"
        proc = self.run_cli([
            "convert", str(src), "-o", str(out), "--use-default-config", "--layer", "double", "--show-config", "--quiet",
        ])
        self.assertIn("--use-default-config ignores --layer", proc.stderr)
        resolved = json.loads(proc.stdout[proc.stdout.index("{"):])
        self.assertEqual(resolved["mode"], "compressed")
        self.assertEqual(resolved["layer"], "single")
        self.assertTrue(resolved["display_password"])
        html_text = (out / "project.html").read_text(encoding="utf-8")
        self.assertIn('class="password-display"', html_text)
        self.assertIn('content="1"', html_text)

    @unittest.skipUnless(_HAS_CRYPTODOME, "PyCryptodomex not available")
    def test_unpack_password_errors(self):
        root, src, _files = self.make_workspace()
        out = root / "out"
        self.run_cli([
            str(src), "-o", str(out), "--mode", "compressed", "--layer", "single",
            "--password-mode", "manual", "--password", "right",
        ])
        page = out / "project.html"
        missing = self.run_cli(["unpack", str(page), "--outdir", str(root / "x"), "--extract"], expect=2)
        self.assertIn("Provide --password", missing.stderr)
        wrong = self.run_cli(["unpack", str(page), "--outdir", str(root / "y"), "--password", "wrong"], expect=2)
        self.assertIn("incorrect password", wrong.stderr)

    def test_error_exit_codes(self):
        root, src, _files = self.make_workspace()
        out = root / "out"
        proc = self.run_cli([str(root / "missing"), "-o", str(out)], expect=2)
        self.assertIn("Error:", proc.stderr)

        proc = self.run_cli([str(src), "-o", str(out), "--mode", "compressed", "--layer", "none"], expect=2)
        self.assertIn("compressed mode", proc.stderr)

        proc = self.run_cli([
            str(src), "-o", str(out), "--mode", "compressed", "--include", "*.pdf", "--password-mode", "none",
        ], expect=1)
        self.assertIn("No files matched", proc.stderr)

        proc = self.run_cli([str(src), "-o", str(out), "--include", "a|b"], expect=2)
        self.assertIn("Error:", proc.stderr)

        proc = self.run_cli(["unpack", str(src / "docs" / "readme.txt")], expect=2)
        self.assertIn("payload", proc.stderr)
        self.assertFalse(out.exists())

    def test_interactive_session(self):
        root, src, files = self.make_workspace()
        out = root / "out"
        answers = [
            str(src),       # input
            str(out),       # output directory
            "n",            # default configuration
            "2",            # compressed
            "1",            # single layer
            "4",            # password mode none
            "*.txt",        # include
            "",             # exclude
            "",             # compression (deflated)
            "",             # max size
            "n",            # progress
            "",             # log level
        ]
        proc = self.run_cli([], stdin="\n".join(answers) + "\n")
        self.assertIn("Done:", proc.stdout)
        page = out / "project.html"
        extract_dir = root / "extract"
        self.run_cli(["unpack", str(page), "--outdir", str(extract_dir), "--extract"])
        self.assertTrue((extract_dir / "project" / "docs" / "readme.txt").exists())
        self.assertFalse((extract_dir / "project" / "docs" / "notes" / "binary.bin").exists())


if __name__ == "__main__":
    unittest.main()
