from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .constants import (
    COMPRESSION_DEFLATED,
    COMPRESSION_STORED,
    DEFAULT_SIZE_WARNING_BYTES,
    ENCRYPTION_METHODS,
)
from .errors import ConfigError, InputNotFound, PasswordEmpty
from .events import INFO, WARN, ERROR
from .orchestrator import LAYER_COUNTS, LAYER_DOUBLE, LAYER_NONE, LAYER_SINGLE, LayerPlan, make_plan
from .password import MANUAL, NONE, PASSWORD_MODES, RANDOM, PasswordSpec
from .selector import OVERSIZE_ABORT, OVERSIZE_SKIP, FilterSpec, filter_spec


MODE_INDIVIDUAL = "individual"
MODE_COMPRESSED = "compressed"
MODES = (MODE_INDIVIDUAL, MODE_COMPRESSED)

LAYERS = (LAYER_NONE, LAYER_SINGLE, LAYER_DOUBLE)
COMPRESSION_LEVELS = (COMPRESSION_STORED, COMPRESSION_DEFLATED)
LOG_LEVELS = (INFO, WARN, ERROR)


@dataclass
class ConversionConfig:
    """Fully resolved options for one run. Built by the CLI or the interactive prompts."""

    input: str
    output: str = "output"
    mode: str = MODE_INDIVIDUAL
    include: List[str] = field(default_factory=lambda: ["*"])
    exclude: List[str] = field(default_factory=list)
    compress: bool = True
    password_mode: str = RANDOM
    passwords: List[str] = field(default_factory=list)
    display_password: Optional[bool] = None
    layer: str = LAYER_DOUBLE
    encryption_method: str = "aes256"
    compression_level: str = COMPRESSION_DEFLATED
    max_size_mb: Optional[float] = None
    oversize: str = OVERSIZE_SKIP
    reuse_password: bool = False
    jobs: int = 4
    size_warning_bytes: int = DEFAULT_SIZE_WARNING_BYTES
    no_progress: bool = False
    quiet: bool = False
    log_level: str = INFO

    @property
    def is_compressed(self) -> bool:
        return self.mode == MODE_COMPRESSED

    @property
    def show_password(self) -> bool:
        """Random passwords are shown unless told otherwise; others are not."""
        if self.layer == LAYER_NONE or self.password_mode == NONE:
            return False
        if self.display_password is None:
            return self.password_mode == RANDOM
        return self.display_password

    def password_specs(self) -> List[PasswordSpec]:
        if self.password_mode == MANUAL:
            return [PasswordSpec.manual(p) for p in self.passwords]
        return [PasswordSpec(self.password_mode)]

    def filter_spec(self) -> FilterSpec:
        return filter_spec(self.include, self.exclude, self.max_size_mb, self.oversize)

    def layer_plan(self, compression: Optional[str] = None) -> LayerPlan:
        return make_plan(
            self.layer,
            encryption_method=self.encryption_method,
            compression=compression or self.compression_level,
            passwords=self.password_specs(),
            reuse_password=self.reuse_password,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["passwords"] = ["***"] * len(self.passwords)
        d["display_password"] = self.show_password
        return d


def validate_config(cfg: ConversionConfig) -> ConversionConfig:
    """Check a config before any file is touched.

    Raises:
        InputNotFound: the input path does not exist.
        PasswordEmpty: manual mode without a usable password.
        ConfigError: any other invalid combination.
    """
    if not cfg.input or not os.path.exists(cfg.input):
        raise InputNotFound(f"Input path '{cfg.input}' does not exist", path=cfg.input, operation="validate-config")
    if cfg.mode not in MODES:
        raise ConfigError(f"Unknown mode: {cfg.mode}", operation="validate-config")
    if cfg.layer not in LAYERS:
        raise ConfigError(f"Unknown layer: {cfg.layer}", operation="validate-config")
    if cfg.is_compressed and cfg.layer == LAYER_NONE:
        raise ConfigError(
            "Layer 'none' is not supported in compressed mode; choose 'single' or 'double'",
            operation="validate-config",
        )
    if cfg.password_mode not in PASSWORD_MODES:
        raise ConfigError(f"Unknown password mode: {cfg.password_mode}", operation="validate-config")
    if cfg.encryption_method not in ENCRYPTION_METHODS:
        raise ConfigError(f"Unknown encryption method: {cfg.encryption_method}", operation="validate-config")
    if cfg.compression_level not in COMPRESSION_LEVELS:
        raise ConfigError(f"Unknown compression level: {cfg.compression_level}", operation="validate-config")
    if cfg.oversize not in (OVERSIZE_SKIP, OVERSIZE_ABORT):
        raise ConfigError(f"Unknown oversize policy: {cfg.oversize}", operation="validate-config")
    if cfg.log_level not in LOG_LEVELS:
        raise ConfigError(f"Unknown log level: {cfg.log_level}", operation="validate-config")
    if cfg.jobs < 1:
        raise ConfigError("jobs must be at least 1", operation="validate-config")
    if cfg.size_warning_bytes < 0:
        raise ConfigError("size_warning_bytes must not be negative", operation="validate-config")

    layer_count = LAYER_COUNTS[cfg.layer]
    if cfg.password_mode == MANUAL and layer_count:
        if not cfg.passwords:
            raise PasswordEmpty("Manual password mode requires a password", operation="validate-config")
        for index, p in enumerate(cfg.passwords):
            if not p or not p.strip():
                raise PasswordEmpty("Manual password may not be blank", layer=index, operation="validate-config")
        if len(cfg.passwords) > layer_count:
            raise ConfigError(
                f"{len(cfg.passwords)} passwords given for {layer_count} layer(s)", operation="validate-config"
            )
    elif cfg.passwords and cfg.password_mode != MANUAL:
        raise ConfigError("Explicit passwords require --password-mode manual", operation="validate-config")

    # surfaces pattern and size errors as ConfigError now rather than mid-run
    cfg.filter_spec()
    return cfg


def default_config(input_path: str, output: str = "output") -> ConversionConfig:
    """The preset behind --use-default-config: one compressed page, single AES-256 layer, password shown."""
    return ConversionConfig(
        input=input_path,
        output=output,
        mode=MODE_COMPRESSED,
        password_mode=RANDOM,
        display_password=True,
        layer=LAYER_SINGLE,
        encryption_method="aes256",
    )
