from __future__ import annotations

import html as _html
import re
from typing import Dict, Optional, Sequence, Tuple

from .errors import TemplateRenderFailure
from .orchestrator import AppliedPassword
from .packager import EmbedPayload
from .template import HTML_TEMPLATE


_PLACEHOLDER = re.compile(r"\{\{([A-Z_]+)\}\}")

_METHOD_LABELS = {"aes128": "AES-128", "aes192": "AES-192", "aes256": "AES-256"}

_TOOLS = "Use 7-Zip, WinRAR, WinZip or another AES-capable archive tool."


def format_file_size(size: int) -> str:
    if size < 1024 * 1024:
        return f"{size / 1024.0:.2f} KB"
    return f"{size / (1024.0 * 1024.0):.2f} MB"


def generate_instructions(layer_count: int, has_password: bool, encryption_method: Optional[str] = None) -> str:
    """Decryption guidance for the page, by layer count and password presence."""
    start = "<p>Use the download button, or decode the Base64 data yourself, to get "
    method = _METHOD_LABELS.get(encryption_method or "", "AES")
    if layer_count >= 2 and has_password:
        return (
            start + "a ZIP archive. Extract the outer archive with the outer password; it contains a "
            f"second ZIP archive that you extract with the inner password. Both layers use {method}. {_TOOLS}</p>"
        )
    if layer_count >= 2:
        return start + "a ZIP archive. Extract it, then extract the ZIP archive it contains. No password is needed.</p>"
    if layer_count == 1 and has_password:
        return start + f"a ZIP archive and extract it with the password ({method}). {_TOOLS}</p>"
    if layer_count == 1:
        return start + "a ZIP archive and extract it. No password is needed.</p>"
    return start + "the original file. No extraction is needed.</p>"


def _layer_label(layer: int, layer_count: int) -> str:
    if layer_count < 2:
        return "Password"
    return "Inner archive password" if layer == 0 else "Outer archive password"


def password_blocks(
    passwords: Sequence[AppliedPassword],
    display_password: bool,
    layer_count: int,
    key_file_name: Optional[str] = None,
) -> Tuple[str, str]:
    """Return (short password hint, rendered password block)."""
    if not passwords:
        return "not required", ""
    if display_password:
        rows = []
        # outer first: that is the order the user needs them in
        for p in sorted(passwords, key=lambda p: p.layer, reverse=True):
            rows.append(
                f'<p>{_layer_label(p.layer, layer_count)}: <span class="password-display">{_html.escape(p.value)}</span></p>'
            )
        hint = "shown below" if len(passwords) == 1 else "both shown below"
        return hint, "\n  ".join(rows)
    if key_file_name and any(p.generated for p in passwords):
        return f"stored in {_html.escape(key_file_name)}", ""
    return "the password you chose", ""


def render_template(template: str, values: Dict[str, str]) -> str:
    """Replace every {{NAME}} in one pass. Values are inserted verbatim."""

    def _sub(m: "re.Match[str]") -> str:
        key = m.group(1)
        if key not in values:
            raise TemplateRenderFailure(f"No value for template placeholder {key}", operation="render")
        return values[key]

    return _PLACEHOLDER.sub(_sub, template)


def render_document(
    payload: EmbedPayload,
    file_name: str,
    passwords: Sequence[AppliedPassword],
    display_password: bool,
    *,
    key_file_name: Optional[str] = None,
    template: str = HTML_TEMPLATE,
) -> str:
    password_info, password_display = password_blocks(
        passwords, display_password, payload.layer_count, key_file_name
    )
    values = {
        "FILE_NAME": _html.escape(file_name),
        "FILE_SIZE": format_file_size(payload.final_archive_size),
        "INSTRUCTIONS": generate_instructions(payload.layer_count, payload.has_password, payload.encryption_method),
        "PASSWORD": password_info,
        "PASSWORD_DISPLAY": password_display,
        "ZIP_BASE64": payload.base64_text,
        "DOWNLOAD_ZIP_NAME": _html.escape(payload.download_name or file_name),
        "LAYER_COUNT": str(payload.layer_count),
    }
    return render_template(template, values)
