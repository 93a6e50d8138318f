from __future__ import annotations

from typing import Optional


class File2HtmlError(Exception):
    """Base class for file2html errors.

    ``path``, ``layer`` and ``operation`` are optional context fields; when set
    they are appended to the message so a failure can be diagnosed from the
    message alone.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        layer: Optional[int] = None,
        operation: Optional[str] = None,
    ):
        self.message = message
        self.path = path
        self.layer = layer
        self.operation = operation
        super().__init__(message)

    def __str__(self) -> str:
        return self._format()

    def _format(self) -> str:
        ctx = []
        if self.operation:
            ctx.append(f"operation={self.operation}")
        if self.layer is not None:
            ctx.append(f"layer={self.layer}")
        if self.path:
            ctx.append(f"path={self.path}")
        if not ctx:
            return self.message
        return f"{self.message} ({', '.join(ctx)})"


# Selection
class InputNotFound(File2HtmlError):
    pass


class FilterNoMatch(File2HtmlError):
    """No file survived the include/exclude filters. Callers decide if fatal."""


class FileTooLarge(File2HtmlError):
    pass


# Passwords / archive building
class PasswordEmpty(File2HtmlError):
    pass


class EncryptionFailure(File2HtmlError):
    pass


class IOWriteFailure(File2HtmlError):
    pass


class LayerPlanError(File2HtmlError):
    pass


# Rendering / configuration
class TemplateRenderFailure(File2HtmlError):
    pass


class ConfigError(File2HtmlError):
    pass


# Reading back
class ArchiveReadError(File2HtmlError):
    pass


class WrongPassword(ArchiveReadError):
    pass


class PayloadNotFound(File2HtmlError):
    pass
