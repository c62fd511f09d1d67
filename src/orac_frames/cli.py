from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich import print
from rich.markup import escape
from rich.table import Table

from orac_frames.config import load_run_config
from orac_frames.container import FitsContainerStore
from orac_frames.errors import ContainerIOError, FrameUsageError
from orac_frames.flags import FlagFileCache
from orac_frames.frame import Frame
from orac_frames.instrument_db import get_instrument, guess_instrument_from_header, load_instrument_db
from orac_frames.log import setup_logging
from orac_frames.naming import derive_flag_name


def _cmd_instruments() -> int:
    t = Table(title="Instruments")
    for col in ("name", "label", "fixed", "suffix", "template", "format", "container", "flag", "translator"):
        t.add_column(col)
    for spec in load_instrument_db().values():
        t.add_row(
            spec.name,
            spec.display_name,
            spec.fixed_part,
            spec.suffix,
            spec.template,
            spec.raw_format,
            "yes" if spec.is_container else "no",
            spec.flag_rule,
            spec.translator,
        )
    print(t)
    return 0


def _frame(args: argparse.Namespace, **kw) -> Frame:
    return Frame(
        args.instrument,
        flag_glob=args.flag_glob,
        container_suffix=args.container_suffix,
        **kw,
    )


def _cmd_names(args: argparse.Namespace) -> int:
    spec = get_instrument(args.instrument)
    frame = _frame(args, data_dir=args.data_dir)
    try:
        raw = frame.raw_name(args.prefix, args.obsnum)
    except FrameUsageError:
        raw = None
    print(f"[bold]raw:[/bold]     {escape(raw) if raw is not None else '(not derivable)'}")
    print(f"[bold]pattern:[/bold] {escape(frame.pattern(args.prefix, args.obsnum).pattern)}")
    if spec.flag_rule == "discover" and args.data_dir is None:
        print(f"[bold]flag:[/bold]    {derive_flag_name(spec, args.prefix, args.obsnum)} (dummy)")
    else:
        print(f"[bold]flag:[/bold]    {frame.flag_name(args.prefix, args.obsnum)}")
    return 0


def _guess_instrument(path: str, suffix: str | None) -> str | None:
    try:
        hdr = FitsContainerStore(suffix=suffix or ".sdf").read_header(path)
    except ContainerIOError as e:
        logging.getLogger("orac_frames").error("Cannot read %s: %s", path, e)
        return None
    spec = guess_instrument_from_header(hdr)
    return spec.name if spec is not None else None


def _cmd_inspect(args: argparse.Namespace) -> int:
    log = logging.getLogger("orac_frames")
    cache = FlagFileCache()
    frame = _frame(args, flag_cache=cache)
    try:
        frame.configure(list(args.files))
    except FrameUsageError as e:
        print(f"[red]{e}[/red]")
        return 2

    if not frame.ok:
        log.warning("Frame configured with I/O errors; headers may be incomplete")

    print(f"[bold]instrument:[/bold] {frame.spec.display_name}")
    print(f"[bold]files:[/bold]  {escape(', '.join(frame.files))}")
    print(f"[bold]number:[/bold] {frame.observation_number()}")
    print(f"[bold]nsubs:[/bold]  {frame.nsubs}")
    print(f"[bold]group:[/bold]  {frame.group!r}")
    print(f"[bold]recipe:[/bold] {frame.recipe}")

    t = Table(title="Canonical headers")
    t.add_column("key")
    t.add_column("value")
    for k in sorted(frame.uhdr):
        t.add_row(f"ORAC_{k}", escape(repr(frame.uhdr[k])))
    print(t)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="orac-frames")
    p.add_argument(
        "--log-level",
        default=None,
        help="CRITICAL|ERROR|WARNING|INFO|DEBUG (or env ORAC_LOG_LEVEL)",
    )
    p.add_argument(
        "--config",
        default=None,
        help="YAML run config (instrument, data_dir, log_level, flag_glob, container_suffix)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("instruments", help="List known instruments")

    p_names = sub.add_parser("names", help="Raw/flag filenames for (prefix, obsnum)")
    p_names.add_argument("--instrument", default=None)
    p_names.add_argument("--prefix", required=True)
    p_names.add_argument("--obsnum", type=int, required=True)
    p_names.add_argument("--data-dir", default=None)

    p_ins = sub.add_parser("inspect", help="Configure a frame and print its identity and headers")
    p_ins.add_argument("--instrument", default=None, help="default: guessed from INSTRUME of the first file")
    p_ins.add_argument("files", nargs="+")

    args = p.parse_args(argv)

    level = args.log_level
    args.flag_glob = None
    args.container_suffix = None
    if args.config:
        cfg = load_run_config(args.config)
        level = level or cfg.log_level
        args.flag_glob = cfg.flag_glob
        args.container_suffix = cfg.container_suffix
        if getattr(args, "instrument", None) is None:
            args.instrument = cfg.instrument
        if hasattr(args, "data_dir") and args.data_dir is None and cfg.data_dir:
            args.data_dir = cfg.data_dir
    setup_logging(level)

    if args.cmd == "instruments":
        return _cmd_instruments()

    if args.cmd == "inspect" and not args.instrument:
        args.instrument = _guess_instrument(args.files[0], args.container_suffix)

    if not args.instrument:
        p.error("--instrument is required (or set 'instrument' in --config)")

    if args.cmd == "names":
        if args.data_dir is not None:
            args.data_dir = str(Path(args.data_dir).expanduser())
        return _cmd_names(args)
    return _cmd_inspect(args)


if __name__ == "__main__":
    raise SystemExit(main())
