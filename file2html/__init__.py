"""
file2html: pack files into self-contained HTML pages.

Features:

- Selects files under a root with include/exclude patterns and a size limit.
- Wraps them in zero, one or two nested ZIP layers, each optionally encrypted
  with WinZip AES (AES-128/192/256, PBKDF2-HMAC-SHA1 keys, HMAC-SHA1 auth code).
- Random, manual or timestamp passwords, shown in the page or written to a
  sidecar .html.key file.
- The final archive travels Base64 encoded inside the page; the browser
  decodes it back into a download with no server involved.
- `file2html unpack` reads a page back and peels its layers.

Archives open in 7-Zip, WinRAR, WinZip and other AES-capable ZIP tools.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "selector",
    "password",
    "builder",
    "orchestrator",
    "packager",
    "convert",
    "unpack",
]

# Programmatic use goes through file2html.convert.execute_conversion with a
# file2html.config.ConversionConfig; the CLI (file2html.cli) builds one from argv.
