from __future__ import annotations

import getpass as _getpass
from typing import Callable, List, Optional, Sequence

from .config import MODE_COMPRESSED, MODE_INDIVIDUAL, ConversionConfig, default_config
from .constants import COMPRESSION_DEFLATED, COMPRESSION_STORED
from .errors import ConfigError, PasswordEmpty
from .orchestrator import LAYER_COUNTS, LAYER_DOUBLE, LAYER_NONE, LAYER_SINGLE
from .password import MANUAL, NONE, RANDOM, TIMESTAMP


Prompt = Callable[[str], str]


class Prompter:
    """Line-based questions on top of ``input``/``getpass``.

    Both callables are injectable so a session can be scripted.
    """

    def __init__(self, ask: Prompt = input, secret: Prompt = _getpass.getpass):
        self._ask = ask
        self._secret = secret

    def text(self, question: str, default: str = "") -> str:
        suffix = f" [{default}]" if default else ""
        answer = self._ask(f"{question}{suffix}: ").strip()
        return answer or default

    def choose(self, question: str, options: Sequence[str], default: int = 0) -> str:
        lines = [question]
        for i, opt in enumerate(options, start=1):
            lines.append(f"  {i}) {opt}")
        prompt = "\n".join(lines) + f"\nChoice [{default + 1}]: "
        while True:
            answer = self._ask(prompt).strip().lower()
            if not answer:
                return options[default]
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return options[int(answer) - 1]
            if answer in options:
                return answer
            print(f"Please enter a number between 1 and {len(options)}.")

    def confirm(self, question: str, default: bool = True) -> bool:
        hint = "Y/n" if default else "y/N"
        while True:
            answer = self._ask(f"{question} [{hint}]: ").strip().lower()
            if not answer:
                return default
            if answer in ("y", "yes"):
                return True
            if answer in ("n", "no"):
                return False
            print("Please answer y or n.")

    def password(self, label: str = "Archive password") -> str:
        """Ask twice; a blank or mismatched entry is an error."""
        first = self._secret(f"{label}: ")
        if not first.strip():
            raise PasswordEmpty("Password may not be blank", operation="prompt")
        second = self._secret("Confirm password: ")
        if first != second:
            raise ConfigError("Passwords do not match", operation="prompt")
        return first


def split_patterns(text: str) -> List[str]:
    return [p.strip() for p in text.split(",") if p.strip()]


def prompt_passwords(prompter: Prompter, layer: str, reuse: bool) -> List[str]:
    count = LAYER_COUNTS[layer]
    if count == 0:
        return []
    if count == 1 or reuse:
        return [prompter.password()]
    return [prompter.password("Inner archive password"), prompter.password("Outer archive password")]


def run_interactive(prompter: Optional[Prompter] = None) -> ConversionConfig:
    """Walk the user through every option and return the resulting config."""
    p = prompter or Prompter()
    input_path = p.text("File or directory to convert (e.g. ./myfile.txt or ./mydir)")
    while not input_path:
        input_path = p.text("File or directory to convert")
    output = p.text("Output directory", "output")

    if p.confirm("Use the default configuration (compressed, single layer, random password shown)?", False):
        return default_config(input_path, output)

    mode = p.choose("Conversion mode", [MODE_INDIVIDUAL, MODE_COMPRESSED])
    layers = [LAYER_NONE, LAYER_SINGLE, LAYER_DOUBLE] if mode == MODE_INDIVIDUAL else [LAYER_SINGLE, LAYER_DOUBLE]
    layer = p.choose("Archive layers", layers, default=layers.index(LAYER_DOUBLE))

    cfg = ConversionConfig(input=input_path, output=output, mode=mode, layer=layer)
    if layer != LAYER_NONE:
        cfg.password_mode = p.choose("Password mode", [RANDOM, MANUAL, TIMESTAMP, NONE])
        if cfg.password_mode != NONE:
            if LAYER_COUNTS[layer] > 1:
                cfg.reuse_password = p.confirm("Use the same password for both layers?", False)
            if cfg.password_mode == MANUAL:
                cfg.passwords = prompt_passwords(p, layer, cfg.reuse_password)
            if cfg.password_mode == RANDOM:
                cfg.display_password = p.confirm("Show the generated password in the HTML page?", True)
            else:
                cfg.display_password = p.confirm("Show the password in the HTML page? (otherwise a .key file is written)", False)
            cfg.encryption_method = p.choose("Encryption method", ["aes256", "aes192", "aes128"])

    cfg.include = split_patterns(p.text("Include patterns, comma separated (e.g. *.txt,*.pdf)", "*")) or ["*"]
    cfg.exclude = split_patterns(p.text("Exclude patterns, comma separated (e.g. *.jpg,*.png)", ""))
    if mode == MODE_INDIVIDUAL and layer != LAYER_NONE:
        cfg.compress = p.confirm("Compress each file's archive?", True)
    if cfg.compress and layer != LAYER_NONE:
        cfg.compression_level = p.choose("Compression", [COMPRESSION_DEFLATED, COMPRESSION_STORED])

    max_size = p.text("Maximum file size in MB (blank for no limit)", "")
    if max_size:
        try:
            cfg.max_size_mb = float(max_size)
        except ValueError as exc:
            raise ConfigError(f"Invalid size: {max_size}", operation="prompt") from exc
    cfg.no_progress = not p.confirm("Show progress?", True)
    cfg.log_level = p.choose("Log level", ["info", "warn", "error"])
    return cfg
