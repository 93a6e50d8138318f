from __future__ import annotations

import sys
import time
import argparse
import json as _json

from typing import List, Optional

from file2html import __version__
from file2html.config import (
    COMPRESSION_LEVELS,
    LAYERS,
    LOG_LEVELS,
    MODES,
    ConversionConfig,
    default_config,
)
from file2html.constants import ENCRYPTION_METHODS
from file2html.convert import ConversionReport, execute_conversion
from file2html.errors import File2HtmlError, FilterNoMatch, WrongPassword
from file2html.events import ConsoleSink
from file2html.interactive import Prompter, prompt_passwords, run_interactive, split_patterns
from file2html.password import MANUAL, PASSWORD_MODES
from file2html.selector import OVERSIZE_ABORT, OVERSIZE_SKIP
from file2html.unpack import unpack_document


_COMMANDS = ("convert", "unpack")

# options that --use-default-config overrides
_PRESET_FIELDS = ("mode", "compress", "password_mode", "passwords", "display_password", "layer", "encryption_method")


def _parse_bool(text: str) -> bool:
    v = text.strip().lower()
    if v in ("true", "yes", "1", "on"):
        return True
    if v in ("false", "no", "0", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {text!r}")


def config_from_args(args: argparse.Namespace) -> ConversionConfig:
    """Resolve parsed options into a ConversionConfig.

    Only options given on the command line replace the defaults. With
    ``--use-default-config`` the preset wins and conflicting options are
    reported and ignored.
    """
    if args.use_default_config:
        cfg = default_config(args.input, args.output or "output")
        ignored = [f for f in _PRESET_FIELDS if getattr(args, f, None) not in (None, [])]
        if ignored:
            names = ", ".join("--" + f.replace("_", "-") for f in ignored)
            print(f"Warning: --use-default-config ignores {names}", file=sys.stderr)
    else:
        cfg = ConversionConfig(input=args.input)
        for name in _PRESET_FIELDS:
            value = getattr(args, name, None)
            if value is not None and value != []:
                setattr(cfg, name, value)
        if args.output:
            cfg.output = args.output

    if args.include:
        cfg.include = split_patterns(",".join(args.include)) or ["*"]
    if args.exclude:
        cfg.exclude = split_patterns(",".join(args.exclude))
    for name in ("compression_level", "max_size", "oversize", "jobs", "log_level"):
        value = getattr(args, name)
        if value is not None:
            setattr(cfg, "max_size_mb" if name == "max_size" else name, value)
    cfg.reuse_password = cfg.reuse_password or bool(args.reuse_password)
    cfg.no_progress = bool(args.no_progress)
    cfg.quiet = bool(args.quiet)
    return cfg


def _ensure_manual_passwords(cfg: ConversionConfig) -> None:
    """Prompt for manual passwords that were not given on the command line."""
    if cfg.password_mode != MANUAL or cfg.passwords:
        return
    cfg.passwords = prompt_passwords(Prompter(), cfg.layer, cfg.reuse_password)


def cmd_convert(cfg: ConversionConfig, *, show_config: bool = False) -> ConversionReport:
    """Convert files into HTML documents and print a summary.

    Args:
        cfg: Resolved configuration.
        show_config: Print the configuration (passwords masked) after the run.

    Returns:
        The run's ConversionReport.
    """
    _ensure_manual_passwords(cfg)
    sink = ConsoleSink(cfg.log_level, progress=not cfg.no_progress, quiet=cfg.quiet)
    t0 = time.time()
    report = execute_conversion(cfg, sink)
    dt = max(0.000001, time.time() - t0)
    mib = report.total_size / (1024.0 * 1024.0)
    print(
        f"Done: {report.processed_files} file(s), {mib:.2f} MiB in {dt:.1f}s; "
        f"documents={len(report.documents)} failed={len(report.failures)} skipped={len(report.skipped)}"
    )
    if show_config:
        print(_json.dumps(cfg.to_dict(), indent=2))
    return report


def cmd_unpack(
    document: str,
    *,
    outdir: str = ".",
    passwords: Optional[List[str]] = None,
    extract: bool = False,
    quiet: bool = False,
) -> bool:
    """Recover the payload of a generated document.

    Args:
        document: Path to the .html file.
        outdir: Output directory.
        passwords: Archive passwords, outer layer first.
        extract: Open the archive layers and write the original files.
    """
    pws = passwords or []
    written = unpack_document(document, outdir, passwords=pws, extract=extract or bool(pws))
    if not quiet:
        for path in written:
            print(f"  writing: {path}")
    print(f"Done: {len(written)} file(s) written to {outdir}")
    return True


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="file2html",
        description="Pack files into self-contained HTML pages carrying an AES-encrypted ZIP payload",
        epilog="Run without arguments for an interactive session. 'convert' is the default command.",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_conv = sub.add_parser("convert", help="Convert files to HTML")
    ap_conv.add_argument("input", help="Input file or directory")
    ap_conv.add_argument("-o", "--output", help="Output directory (default: output)")
    ap_conv.add_argument("--mode", choices=MODES, help="individual: one page per file; compressed: one page for all")
    ap_conv.add_argument("--include", action="append", default=[], help="Include patterns, comma separated (default: *); patterns with / match paths under the input")
    ap_conv.add_argument("--exclude", action="append", default=[], help="Exclude patterns, comma separated")
    ap_conv.add_argument(
        "--compress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Compress each file's archive in individual mode (default: on)",
    )
    ap_conv.add_argument("--password-mode", choices=PASSWORD_MODES, help="random (default), manual, timestamp or none")
    ap_conv.add_argument(
        "--password",
        dest="passwords",
        action="append",
        default=[],
        help="Manual password; repeat once per layer, inner first (prompted when omitted)",
    )
    ap_conv.add_argument(
        "--display-password",
        type=_parse_bool,
        metavar="{true,false}",
        help="Show the password in the page (default: true for random, false otherwise)",
    )
    ap_conv.add_argument("--compression-level", choices=COMPRESSION_LEVELS, help="stored or deflated (default)")
    ap_conv.add_argument("--layer", choices=LAYERS, help="Number of ZIP layers (default: double)")
    ap_conv.add_argument("--encryption-method", choices=sorted(ENCRYPTION_METHODS), help="AES strength (default: aes256)")
    ap_conv.add_argument("--max-size", type=float, help="Maximum file size in MB")
    ap_conv.add_argument("--oversize", choices=[OVERSIZE_SKIP, OVERSIZE_ABORT], help="What to do with oversized files (default: skip)")
    ap_conv.add_argument("--reuse-password", action="store_true", help="Use the inner password for the outer layer too")
    ap_conv.add_argument("--jobs", "-j", type=int, help="Parallel jobs in individual mode (default 4)")
    ap_conv.add_argument("--no-progress", action="store_true", help="Do not print progress lines")
    ap_conv.add_argument("--quiet", action="store_true", help="limit outputs to summaries only")
    ap_conv.add_argument("--log-level", choices=LOG_LEVELS, help="Minimum level to print (default: info)")
    ap_conv.add_argument(
        "--use-default-config",
        action="store_true",
        help="Compressed mode, single layer, random password shown in the page, aes256",
    )
    ap_conv.add_argument("--show-config", action="store_true", help="Print the resolved configuration after the run")

    ap_unpack = sub.add_parser("unpack", help="Recover the payload of a generated HTML page")
    ap_unpack.add_argument("document", help="Generated .html path")
    ap_unpack.add_argument("--outdir", default=".", help="Output directory")
    ap_unpack.add_argument(
        "--password",
        dest="passwords",
        action="append",
        default=[],
        help="Archive password, outer layer first; repeat for double layers",
    )
    ap_unpack.add_argument("--extract", action="store_true", help="Open the archive layers and write the original files")
    ap_unpack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    return ap


def main(argv: List[str] | None = None):
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)
    try:
        if not argv:
            report = cmd_convert(run_interactive())
            sys.exit(0 if report.ok and report.documents else 1)

        if argv[0] not in _COMMANDS and argv[0] not in ("-h", "--help", "--version"):
            argv.insert(0, "convert")
        args = _build_parser().parse_args(argv)

        if args.cmd == "convert":
            report = cmd_convert(config_from_args(args), show_config=args.show_config)
            sys.exit(0 if report.ok and report.documents else 1)
        elif args.cmd == "unpack":
            cmd_unpack(
                args.document,
                outdir=args.outdir,
                passwords=args.passwords,
                extract=args.extract,
                quiet=args.quiet,
            )
        else:
            raise RuntimeError("Unknown command")
    except FilterNoMatch as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except WrongPassword as e:
        if e.message == "password required":
            print("Error: Document payload is encrypted. Provide --password.", file=sys.stderr)
        else:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except EOFError:
        print("Error: input closed before all questions were answered", file=sys.stderr)
        sys.exit(2)
    except (File2HtmlError, OSError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
