#!/usr/bin/env python3
"""
disk_triage.py — Walk one directory tree and rank its biggest space users.

Features:
  - Single-pass scan of a directory tree using lstat (symlinks are never followed).
  - Unreadable entries are reported on stderr and their subtree is skipped.
  - Every directory accumulates the raw sizes and the entry count of everything
    beneath it (ancestor propagation).
  - Ranked report: top files by size, top directories by size, top directories
    by number of contained entries.
  - Plain text, JSON or Rich-table output, raw JSON item dump, optional CSV export.

Examples:
  # Report on the current directory:
  python3 disk_triage.py

  # Top 50 entries per list for /var, as JSON:
  python3 disk_triage.py /var --top 50 --output-format json

  # Dump every scanned item (after aggregation) for further processing:
  python3 disk_triage.py ~/projects --dump-items > items.json

  # Pretty tables plus a CSV under $HOME/exported_csv_logs:
  python3 disk_triage.py ~ --rich --csv --verbose

Exit codes:
  0  success
  1  usage / validation error (bad directory, negative --top)
  2  invalid command line (reported by argparse)
  3  runtime failure (empty result set, CSV could not be written)
"""

from __future__ import annotations

import argparse
import csv
import enum
import json
import os
import stat
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from rich.console import Console
from rich.markup import escape
from rich.table import Table

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_RUNTIME = 3

DEFAULT_TOP = 20

# ─────────────────────────────── Utilities ───────────────────────────────


def format_human_size(num: int) -> str:
    """
    Convert a byte count into a human-readable string.

    Binary thresholds (1024, 1024², 1024³) with KB/MB/GB labels and two
    decimals; plain integer bytes below 1 KB. Negative input renders as "0 B".
    """
    if num < 0:
        return "0 B"
    if num < 1024:
        return f"{num} B"
    for unit, scale in (("GB", 1024 ** 3), ("MB", 1024 ** 2)):
        if num >= scale:
            return f"{num / scale:.2f} {unit}"
    return f"{num / 1024:.2f} KB"


def is_under(path: str, root: str) -> bool:
    """
    Return True if 'path' is equal to or inside 'root'.
    """
    if path == root:
        return True
    # Trailing separator so /var does not match /variant
    return path.startswith(root.rstrip(os.sep) + os.sep)


def ancestors(path: str, root: str) -> Iterator[str]:
    """
    Yield the enclosing directories of 'path', nearest first, up to and
    including 'root'. Nothing above 'root' is ever yielded.
    """
    current = path
    while current != root:
        parent = os.path.dirname(current)
        if parent == current or not is_under(parent, root):
            return
        yield parent
        current = parent


def default_csv_path(script_stem: str, filename: str) -> Path:
    """
    Build a per-run CSV output path under $HOME/exported_csv_logs.

    Example for script_stem="disk_triage":
      $HOME/exported_csv_logs/disk_triage/logs/20251205_210101/filename
    """
    return (
        Path(os.path.expanduser("~"))
        / "exported_csv_logs"
        / script_stem
        / "logs"
        / datetime.now().strftime("%Y%m%d_%H%M%S")
        / filename
    )


def display_path(path: str) -> str:
    """
    Printable form of a scanned path.

    Names that are not valid UTF-8 come back from the OS surrogate-escaped
    and cannot be written to a strict text stream; their raw bytes are shown
    as backslash escapes instead (b"bad\\xff" -> "bad\\\\xff").
    """
    return os.fsencode(path).decode("utf-8", "backslashreplace")


def _warn(message: str) -> None:
    print(f"[WARN] {message}", file=sys.stderr)


def _info(message: str) -> None:
    print(f"[INFO] {message}", file=sys.stderr)


def _error(message: str) -> None:
    print(f"[ERROR] {message}", file=sys.stderr)


# ─────────────────────────────── Data Model ───────────────────────────────


@dataclass
class Item:
    """
    One filesystem entry as seen by the scanner.

    'size' starts as the entry's own lstat size; for directories the
    aggregation pass adds the raw size of every descendant to it.
    """

    path: str
    size: int
    is_directory: bool
    file_count: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "path": display_path(self.path),
            "size": self.size,
            "is_directory": self.is_directory,
            "file_count": self.file_count,
        }


@dataclass
class Report:
    """
    Totals and rankings computed from an aggregated item mapping.
    """

    root: str
    top: int
    total_items: int
    total_files: int
    total_dirs: int
    # Size of the single largest item (normally the root), not a sum.
    total_size: int
    top_files: List[Item] = field(default_factory=list)
    top_dirs_by_size: List[Item] = field(default_factory=list)
    top_dirs_by_count: List[Item] = field(default_factory=list)


class OutputFormat(str, enum.Enum):
    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True)
class TriageConfig:
    """
    Options for one run, built once from the command line.
    """

    root: str = "."
    top: int = DEFAULT_TOP
    output_format: OutputFormat = OutputFormat.TEXT
    dump_items: bool = False
    use_rich: bool = False
    csv_path: Optional[Path] = None
    verbose: bool = False


class EmptyResultError(RuntimeError):
    """Raised when a report is requested for a scan that found nothing."""


# ─────────────────────────────── Core Logic ───────────────────────────────


def scan_tree(
    root: str,
    errors: Optional[List[Tuple[str, str]]] = None,
) -> Dict[str, Item]:
    """
    Walk 'root' depth-first and return an insertion-ordered mapping
    path -> Item covering the root and every reachable entry.

    Entries that cannot be stat'ed, and directories that cannot be listed,
    are reported on stderr (and appended to 'errors' when given); their
    subtree is skipped and the walk continues.
    """
    root = os.path.normpath(root)
    items: Dict[str, Item] = {}
    stack = [root]

    while stack:
        path = stack.pop()
        try:
            st = os.lstat(path)
        except OSError as exc:
            reason = exc.strerror or str(exc)
            _warn(f"Cannot stat {display_path(path)}: {reason}")
            if errors is not None:
                errors.append((path, reason))
            continue

        is_dir = stat.S_ISDIR(st.st_mode)
        items[path] = Item(path=path, size=st.st_size, is_directory=is_dir)
        if not is_dir:
            continue

        try:
            with os.scandir(path) as it:
                names = sorted(entry.name for entry in it)
        except OSError as exc:
            reason = exc.strerror or str(exc)
            _warn(f"Cannot list {display_path(path)}: {reason}")
            if errors is not None:
                errors.append((path, reason))
            continue

        # Reversed so children are popped in name order
        stack.extend(os.path.join(path, name) for name in reversed(names))

    return items


def aggregate(items: Dict[str, Item], root: str) -> None:
    """
    Propagate every item into the totals of each enclosing directory.

    Each ancestor (within 'root') gets file_count += 1 and size += the
    item's raw stat size. Contributions always use the raw size captured
    by the scan, so a directory's total is its own size plus the raw sizes
    of all its descendants, whatever order the mapping is in.
    """
    root = os.path.normpath(root)
    raw_sizes = {path: item.size for path, item in items.items()}

    for path in items:
        for parent in ancestors(path, root):
            owner = items.get(parent)
            if owner is None:
                continue
            owner.file_count += 1
            owner.size += raw_sizes[path]


def top_k(items: Iterable[Item], key: Callable[[Item], int], k: int) -> List[Item]:
    """
    Return at most k items, largest key first; ties keep their input order.
    """
    if k <= 0:
        return []
    return sorted(items, key=key, reverse=True)[:k]


def build_report(items: Dict[str, Item], root: str, top: int = DEFAULT_TOP) -> Report:
    """
    Summarise an aggregated mapping into totals and the three top-'top' lists.

    Raises EmptyResultError when 'items' is empty, since there is no
    largest item to report.
    """
    if not items:
        raise EmptyResultError(
            f"empty result set: nothing could be scanned under {root}"
        )

    dirs = [item for item in items.values() if item.is_directory]
    files = [item for item in items.values() if not item.is_directory]

    return Report(
        root=os.path.normpath(root),
        top=top,
        total_items=len(items),
        total_files=len(files),
        total_dirs=len(dirs),
        total_size=max(item.size for item in items.values()),
        top_files=top_k(files, lambda i: i.size, top),
        top_dirs_by_size=top_k(dirs, lambda i: i.size, top),
        top_dirs_by_count=top_k(dirs, lambda i: i.file_count, top),
    )


# ─────────────────────────────── Reporting ───────────────────────────────


def _ranked_section(title: str, rows: List[Tuple[str, str]]) -> List[str]:
    lines = [title]
    if not rows:
        lines.append("  (none)")
        return lines
    width = max(len(value) for value, _ in rows)
    for value, path in rows:
        lines.append(f"  {value:>{width}}  {path}")
    return lines


def render_text(report: Report) -> str:
    """
    Human-readable report; each list's value column is right-aligned to
    the widest value in that list.
    """
    lines = [
        f"Disk usage report for {display_path(report.root)}",
        f"Total items: {report.total_items} "
        f"({report.total_files} files, {report.total_dirs} directories)",
        f"Total size: {format_human_size(report.total_size)}",
        "",
    ]
    lines += _ranked_section(
        f"Top {report.top} files by size:",
        [(format_human_size(i.size), display_path(i.path))
         for i in report.top_files],
    )
    lines.append("")
    lines += _ranked_section(
        f"Top {report.top} directories by size:",
        [(format_human_size(i.size), display_path(i.path))
         for i in report.top_dirs_by_size],
    )
    lines.append("")
    lines += _ranked_section(
        f"Top {report.top} directories by file count:",
        [(str(i.file_count), display_path(i.path))
         for i in report.top_dirs_by_count],
    )
    return "\n".join(lines) + "\n"


def _item_payload(item: Item) -> Dict[str, object]:
    payload = item.to_dict()
    payload["size_human"] = format_human_size(item.size)
    return payload


def render_json(report: Report) -> str:
    payload = {
        "root": display_path(report.root),
        "total_items": report.total_items,
        "total_files": report.total_files,
        "total_dirs": report.total_dirs,
        "total_size": report.total_size,
        "total_size_human": format_human_size(report.total_size),
        "top_files": [_item_payload(i) for i in report.top_files],
        "top_directories_by_size": [_item_payload(i) for i in report.top_dirs_by_size],
        "top_directories_by_file_count": [
            _item_payload(i) for i in report.top_dirs_by_count
        ],
    }
    return json.dumps(payload, indent=2) + "\n"


def render_dump(items: Dict[str, Item]) -> str:
    """
    Every scanned item as a JSON array, in scan order, without ranking.
    """
    return json.dumps([item.to_dict() for item in items.values()], indent=2) + "\n"


def render(report: Report, fmt: OutputFormat) -> str:
    if fmt is OutputFormat.TEXT:
        return render_text(report)
    if fmt is OutputFormat.JSON:
        return render_json(report)
    raise ValueError(f"Unsupported output format: {fmt!r}")


def render_rich(report: Report, console: Console) -> None:
    """
    Print the report as Rich tables.
    """
    console.print()
    console.print(f"[bold]== Disk usage report for {escape(display_path(report.root))} ==[/bold]")
    console.print(
        f"Total items: {report.total_items} "
        f"({report.total_files} files, {report.total_dirs} directories)"
    )
    console.print(f"Total size: [bold]{format_human_size(report.total_size)}[/bold]")
    console.print()

    sections = [
        ("files by size", "Size", report.top_files, lambda i: format_human_size(i.size)),
        ("directories by size", "Size", report.top_dirs_by_size,
         lambda i: format_human_size(i.size)),
        ("directories by file count", "Entries", report.top_dirs_by_count,
         lambda i: str(i.file_count)),
    ]
    for title, value_header, rows, value_of in sections:
        if not rows:
            console.print(f"No {title.split(' ')[0]} found.")
            console.print()
            continue
        table = Table(
            title=f"Top {report.top} {title}",
            show_header=True,
            header_style="bold",
        )
        table.add_column("#", justify="right", no_wrap=True)
        table.add_column(value_header, justify="right", no_wrap=True)
        table.add_column("Path", overflow="fold")
        for rank, item in enumerate(rows, start=1):
            table.add_row(str(rank), value_of(item), escape(display_path(item.path)))
        console.print(table)
        console.print()


def export_csv(report: Report, csv_path: Path) -> None:
    """
    Export the three rankings into a single CSV.

    CSV schema:
      kind, rank, size_bytes, size_human, file_count, path
    """
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["kind", "rank", "size_bytes", "size_human", "file_count", "path"])
        for kind, rows in (
            ("file", report.top_files),
            ("dir", report.top_dirs_by_size),
            ("dir_count", report.top_dirs_by_count),
        ):
            for rank, item in enumerate(rows, start=1):
                writer.writerow(
                    [kind, rank, item.size, format_human_size(item.size),
                     item.file_count, display_path(item.path)],
                )


# ─────────────────────────────── CLI ───────────────────────────────


def parse_args(argv: List[str]) -> argparse.Namespace:
    """
    Parse command line options.
    """
    parser = argparse.ArgumentParser(
        prog="disk-triage",
        description=(
            "Scan a directory tree and report the largest files, the largest "
            "directories and the directories holding the most entries."
        ),
    )

    parser.add_argument(
        "directory",
        nargs="?",
        default=".",
        help="Directory to scan (default: current directory).",
    )

    parser.add_argument(
        "-n",
        "--top",
        type=int,
        default=DEFAULT_TOP,
        help=f"Number of entries per ranked list (default: {DEFAULT_TOP}).",
    )

    parser.add_argument(
        "-f",
        "--output-format",
        choices=[fmt.value for fmt in OutputFormat],
        default=OutputFormat.TEXT.value,
        help="Report format (default: text).",
    )

    parser.add_argument(
        "--dump-items",
        action="store_true",
        help="Print every scanned item as JSON instead of a ranked report.",
    )

    parser.add_argument(
        "--rich",
        action="store_true",
        help="Render the text report as Rich tables.",
    )

    parser.add_argument(
        "--csv",
        nargs="?",
        const="",
        default=None,
        metavar="PATH",
        help=(
            "Also export the report to CSV (default location: "
            "$HOME/exported_csv_logs/disk_triage/logs/<timestamp>/)."
        ),
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print scan statistics and the CSV path to stderr.",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> TriageConfig:
    """
    Validate parsed arguments and freeze them into a TriageConfig.

    Raises ValueError for a missing/non-directory root or a negative --top.
    The root is checked with lstat, the same way the scan sees it, so a
    symlink to a directory is rejected rather than reported as one file.
    """
    try:
        root_mode = os.lstat(os.path.normpath(args.directory)).st_mode
    except OSError:
        raise ValueError(f"Not a directory: {display_path(args.directory)}") from None
    if stat.S_ISLNK(root_mode):
        raise ValueError(
            f"Not a directory: {display_path(args.directory)} is a symbolic link "
            f"(scan its target {display_path(os.path.realpath(args.directory))} instead)"
        )
    if not stat.S_ISDIR(root_mode):
        raise ValueError(f"Not a directory: {display_path(args.directory)}")
    if args.top < 0:
        raise ValueError(f"--top must be >= 0 (got {args.top})")

    csv_path: Optional[Path] = None
    if args.csv is not None:
        csv_path = (
            Path(args.csv).expanduser()
            if args.csv
            else default_csv_path("disk_triage", "disk_triage.csv")
        )

    return TriageConfig(
        root=os.path.normpath(args.directory),
        top=args.top,
        output_format=OutputFormat(args.output_format),
        dump_items=args.dump_items,
        use_rich=args.rich,
        csv_path=csv_path,
        verbose=args.verbose,
    )


def main(argv: List[str]) -> int:
    args = parse_args(argv)
    try:
        config = build_config(args)
    except ValueError as exc:
        _error(str(exc))
        return EXIT_USAGE

    errors: List[Tuple[str, str]] = []
    started = time.perf_counter()
    items = scan_tree(config.root, errors=errors)
    aggregate(items, config.root)

    if config.verbose:
        _info(
            f"Scanned {len(items)} entries in "
            f"{time.perf_counter() - started:.2f}s ({len(errors)} skipped)"
        )

    if config.dump_items:
        print(render_dump(items), end="")
        return EXIT_OK

    as_rich = config.use_rich and config.output_format is OutputFormat.TEXT
    try:
        report = build_report(items, config.root, config.top)
        output = "" if as_rich else render(report, config.output_format)
    except EmptyResultError as exc:
        _error(str(exc))
        return EXIT_RUNTIME

    if config.csv_path is not None:
        try:
            export_csv(report, config.csv_path)
        except OSError as exc:
            _error(f"Cannot write CSV {config.csv_path}: {exc}")
            return EXIT_RUNTIME
        if config.verbose:
            _info(f"CSV written to: {config.csv_path}")

    if as_rich:
        render_rich(report, Console())
    else:
        print(output, end="")
    return EXIT_OK


def cli() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    cli()
