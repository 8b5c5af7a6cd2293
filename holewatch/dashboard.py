"""Interactive terminal dashboard for Pi-hole servers.

Shows a tab per configured server, the selected server's summary counters,
a queries-over-time bar chart and the top queries / blocked domains / clients
leaderboards, using curses. Data is fetched in the background so the UI
never waits on the network.

Usage:
    holewatch path/to/holewatch.toml
    holewatch --dump-config > holewatch.toml
"""

from __future__ import annotations

import argparse
import curses
import functools
import logging
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from holewatch.aggregate import chart_rows, sort_ranking
from holewatch.app import ApplicationState, Command, TargetView
from holewatch.config import (
    DEFAULT_PATH,
    build_targets,
    dump_default_config,
    load_config,
    refresh_interval,
)
from holewatch.models import MetricsSnapshot, Summary
from holewatch.provider import fetch_snapshot, make_admin, make_client
from holewatch.refresh import RefreshCoordinator

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────────

TICK_RATE = 1.0  # seconds
BAR_WIDTH = 5
BAR_GAP = 1
BAR_FILL = "█"
HELP_TEXT = (
    "E: Enable  D: Disable  Z: Zoom+  X: Zoom-  Space: Update  "
    "Left: Prev  Right: Next  Q: Quit"
)

# Curses colour-pair IDs
C_NORMAL = 1
C_WARNING = 2
C_CRITICAL = 3
C_TITLE = 4
C_DIM = 5

KEYMAP: dict[int, Command] = {
    ord("q"): Command.QUIT,
    ord("Q"): Command.QUIT,
    curses.KEY_LEFT: Command.SELECT_PREVIOUS,
    ord("h"): Command.SELECT_PREVIOUS,
    curses.KEY_RIGHT: Command.SELECT_NEXT,
    ord("l"): Command.SELECT_NEXT,
    ord(" "): Command.FORCE_REFRESH,
    ord("z"): Command.ZOOM_IN,
    ord("x"): Command.ZOOM_OUT,
    ord("e"): Command.ENABLE_PROVIDER,
    ord("d"): Command.DISABLE_PROVIDER,
}


def command_for_key(key: int) -> Command | None:
    return KEYMAP.get(key)


# ── Colour helpers ─────────────────────────────────────────────────────────


def _init_colors() -> None:
    curses.start_color()
    curses.use_default_colors()
    curses.init_pair(C_NORMAL, curses.COLOR_GREEN, -1)
    curses.init_pair(C_WARNING, curses.COLOR_YELLOW, -1)
    curses.init_pair(C_CRITICAL, curses.COLOR_RED, -1)
    curses.init_pair(C_TITLE, curses.COLOR_CYAN, -1)
    curses.init_pair(C_DIM, curses.COLOR_WHITE, -1)


def _flag_color(ok: bool) -> int:
    return C_NORMAL if ok else C_CRITICAL


# ── Formatting helpers ─────────────────────────────────────────────────────


def fmt_count(n: int) -> str:
    """Thousands-separated integer."""
    return f"{n:,}"


def fmt_age(seconds: float | None) -> str:
    """Human-readable age of the last update."""
    if seconds is None:
        return "never"
    s = max(0, int(seconds))
    if s < 60:
        return f"{s}s ago"
    if s < 3600:
        return f"{s // 60}m ago"
    return f"{s // 3600}h {s % 3600 // 60}m ago"


def overview_lines(summary: Summary, has_key: bool) -> list[list[tuple[str, str, int]]]:
    """Rows for the four overview boxes as ``(label, value, colour)`` triples."""
    return [
        [
            ("Status", summary.status, _flag_color(summary.enabled)),
            ("API key", str(has_key).lower(), _flag_color(has_key)),
            ("Privacy level", str(summary.privacy_level), C_DIM),
            ("Blocklist", fmt_count(summary.domains_being_blocked), C_DIM),
        ],
        [
            ("Queries", fmt_count(summary.dns_queries_today), C_DIM),
            ("Blocked", fmt_count(summary.ads_blocked_today), C_DIM),
            ("Blocked %", f"{summary.ads_percentage_today:.1f}%", C_DIM),
            ("Unique domains", fmt_count(summary.unique_domains), C_DIM),
        ],
        [
            ("Forwarded", fmt_count(summary.queries_forwarded), C_DIM),
            ("Cached", fmt_count(summary.queries_cached), C_DIM),
            ("Unique clients", fmt_count(summary.unique_clients), C_DIM),
        ],
        [
            ("NODATA", fmt_count(summary.reply_nodata), C_DIM),
            ("NXDOMAIN", fmt_count(summary.reply_nxdomain), C_DIM),
            ("CNAME", fmt_count(summary.reply_cname), C_DIM),
            ("IP", fmt_count(summary.reply_ip), C_DIM),
        ],
    ]


# ── Curses drawing primitives ──────────────────────────────────────────────


def _safe(win: curses.window, *args: Any) -> None:
    """addstr wrapper that swallows out-of-bounds errors."""
    try:
        win.addstr(*args)
    except curses.error:
        pass


def _draw_box(
    win: curses.window,
    y: int,
    x: int,
    h: int,
    w: int,
    title: str = "",
) -> curses.window | None:
    """Draw a bordered box and return the inner sub-window."""
    max_y, max_x = win.getmaxyx()
    h = min(h, max_y - y)
    w = min(w, max_x - x)
    if h < 3 or w < 4:
        return None
    try:
        sub = win.subwin(h, w, y, x)
        sub.box()
        if title and len(title) + 4 < w:
            sub.addstr(
                0, 2, f" {title} ", curses.color_pair(C_TITLE) | curses.A_BOLD
            )
        return sub
    except curses.error:
        return None


def _split(total: int, parts: int) -> list[tuple[int, int]]:
    """Split *total* columns into ``(offset, width)`` slices."""
    base, extra = divmod(total, parts)
    slices: list[tuple[int, int]] = []
    offset = 0
    for i in range(parts):
        width = base + (1 if i < extra else 0)
        slices.append((offset, width))
        offset += width
    return slices


# ── Panel renderers ────────────────────────────────────────────────────────


def draw_help_bar(win: curses.window, w: int) -> None:
    attr = curses.color_pair(C_TITLE) | curses.A_REVERSE
    _safe(win, 0, 0, " " * (w - 1), attr)
    _safe(win, 0, 1, HELP_TEXT[: w - 2], attr)


def draw_tabs(win: curses.window, y: int, w: int, app: ApplicationState) -> None:
    box = _draw_box(win, y, 0, 3, w, "Pi-hole")
    if not box:
        return
    x = 2
    for i, view in enumerate(app.targets):
        name = view.target.display_name
        if x + len(name) >= w - 2:
            break
        if i == app.selected_index:
            attr = curses.color_pair(C_NORMAL) | curses.A_BOLD | curses.A_UNDERLINE
        else:
            attr = curses.color_pair(C_WARNING)
        _safe(box, 1, x, name, attr)
        x += len(name)
        if i < len(app.targets) - 1:
            _safe(box, 1, x, " | ", curses.color_pair(C_DIM))
            x += 3


def draw_overview(
    win: curses.window, y: int, w: int, h: int, view: TargetView
) -> None:
    titles = ("Summary", "Query stats", "Other stats", "Responses")
    summary = view.snapshot.summary
    columns = (
        overview_lines(summary, view.target.can_mutate) if summary is not None else None
    )
    for i, (x, width) in enumerate(_split(w, len(titles))):
        box = _draw_box(win, y, x, h, width, titles[i])
        if not box or columns is None:
            continue
        for row, (label, value, color) in enumerate(columns[i][: h - 2], start=1):
            _safe(box, row, 1, f"{label}: "[: width - 3], curses.color_pair(C_DIM))
            _safe(box, value[: max(0, width - len(label) - 5)], curses.color_pair(color))


def draw_queries_chart(
    win: curses.window,
    y: int,
    w: int,
    h: int,
    snapshot: MetricsSnapshot,
    squash_factor: int,
) -> None:
    title = "Total queries"
    if squash_factor > 1:
        title += f" (x{squash_factor})"
    box = _draw_box(win, y, 0, h, w, title)
    if not box or snapshot.series is None:
        return

    # value row + bars + label row inside the border
    bar_h = h - 4
    if bar_h < 1:
        return
    max_bars = max(0, (w - 2) // (BAR_WIDTH + BAR_GAP))
    rows = chart_rows(snapshot.series, squash_factor)[:max_bars]
    if not rows:
        return
    peak = max(count for _, count in rows) or 1

    for i, (label, count) in enumerate(rows):
        x = 1 + i * (BAR_WIDTH + BAR_GAP)
        filled = round(bar_h * count / peak)
        top = 1 + bar_h - filled
        _safe(box, top, x, str(count)[:BAR_WIDTH].center(BAR_WIDTH), curses.color_pair(C_DIM))
        for row in range(top + 1, bar_h + 2):
            _safe(box, row, x, BAR_FILL * BAR_WIDTH, curses.color_pair(C_NORMAL))
        _safe(box, bar_h + 2, x, label[:BAR_WIDTH], curses.color_pair(C_DIM))


def draw_list(
    win: curses.window,
    y: int,
    x: int,
    w: int,
    h: int,
    title: str,
    header: tuple[str, str],
    rows: Sequence[tuple[str, int]],
) -> None:
    box = _draw_box(win, y, x, h, w, title)
    if not box:
        return
    count_w = max(7, int((w - 3) * 0.3))
    label_w = max(1, w - 3 - count_w)
    _safe(
        box,
        1,
        1,
        f"{header[0]:<{label_w}.{label_w}s}{header[1]:>{count_w}s}",
        curses.color_pair(C_TITLE) | curses.A_BOLD,
    )
    for row, (label, count) in enumerate(rows[: max(0, h - 3)], start=2):
        line = f"{label:<{label_w}.{label_w}s}{fmt_count(count):>{count_w}s}"
        _safe(box, row, 1, line, curses.color_pair(C_NORMAL))


def draw_statistics(
    win: curses.window, y: int, w: int, h: int, snapshot: MetricsSnapshot
) -> None:
    top_items = snapshot.top_items
    panels = [
        ("Top Queries", ("Domain", "Count"), top_items.top_queries if top_items else {}),
        ("Top Ads", ("Domain", "Count"), top_items.top_ads if top_items else {}),
        ("Top Clients", ("Client", "Count"), snapshot.top_sources or {}),
    ]
    for (x, width), (title, header, ranking) in zip(_split(w, len(panels)), panels):
        draw_list(win, y, x, width, h, title, header, sort_ranking(ranking, h - 3))


def draw_status_line(
    win: curses.window, y: int, w: int, app: ApplicationState, now: float
) -> None:
    coordinator = app.selected.coordinator
    last = coordinator.last_update
    age = fmt_age(None if last is None else now - last)
    state = "updating..." if coordinator.in_flight else f"updated {age}"
    _safe(win, y, 1, state[: w - 2], curses.color_pair(C_DIM))
    if app.status_message:
        msg = app.status_message
        if msg.startswith("Failed"):
            color = C_CRITICAL
        elif app.mutation_pending:
            color = C_WARNING
        else:
            color = C_NORMAL
        x = len(state) + 4
        _safe(win, y, x, msg[: max(0, w - x - 1)], curses.color_pair(color) | curses.A_BOLD)


def draw_ui(stdscr: curses.window, app: ApplicationState) -> None:
    max_y, max_x = stdscr.getmaxyx()
    stdscr.erase()

    if max_y < 16 or max_x < 60:
        _safe(stdscr, 0, 0, "Terminal too small (need 60x16+)")
        stdscr.refresh()
        return

    view = app.selected
    snapshot = view.snapshot

    draw_help_bar(stdscr, max_x)
    draw_tabs(stdscr, 1, max_x, app)
    overview_h = 6
    draw_overview(stdscr, 4, max_x, overview_h, view)

    body_y = 4 + overview_h
    body_h = max_y - body_y - 1
    chart_h = body_h // 2
    draw_queries_chart(stdscr, body_y, max_x, chart_h, snapshot, app.chart_squash_factor)
    draw_statistics(stdscr, body_y + chart_h, max_x, body_h - chart_h, snapshot)
    draw_status_line(stdscr, max_y - 1, max_x, app, time.monotonic())

    stdscr.refresh()


# ── Wiring ─────────────────────────────────────────────────────────────────


def build_app(config: dict[str, Any]) -> ApplicationState:
    """Create one coordinator (and admin handle, if keyed) per server."""
    timeout = float(config["request_timeout"])
    views: list[TargetView] = []
    for target in build_targets(config):
        fetch = functools.partial(
            fetch_snapshot,
            make_client(target, timeout),
            authenticated=target.can_mutate,
            top_limit=int(config["top_limit"]),
        )
        views.append(
            TargetView(
                target=target,
                coordinator=RefreshCoordinator(target, fetch),
                admin=make_admin(target, timeout),
            )
        )
    return ApplicationState(
        views,
        refresh_interval(config),
        refresh_all=bool(config["refresh_all"]),
    )


# ── Main loop ──────────────────────────────────────────────────────────────


def _dashboard_loop(
    stdscr: curses.window, app: ApplicationState, tick_rate: float
) -> None:
    _init_colors()
    curses.curs_set(0)
    stdscr.keypad(True)

    app.on_tick()
    last_tick = time.monotonic()

    while True:
        draw_ui(stdscr, app)

        remaining = tick_rate - (time.monotonic() - last_tick)
        stdscr.timeout(max(0, int(remaining * 1000)))
        key = stdscr.getch()
        if key == curses.KEY_RESIZE:
            stdscr.clear()

        command = command_for_key(key)
        if command is not None:
            logger.debug("command %s", command.name)
            if not app.handle(command):
                return

        if time.monotonic() - last_tick >= tick_rate:
            app.on_tick()
            last_tick = time.monotonic()


# ── CLI entry point ────────────────────────────────────────────────────────


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Terminal dashboard for one or more Pi-hole servers.",
    )
    parser.add_argument(
        "config",
        type=Path,
        nargs="?",
        default=DEFAULT_PATH,
        help=f"Path to TOML or JSON config file (default: {DEFAULT_PATH})",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        metavar="PATH",
        help="Write logs to PATH (the terminal is owned by the dashboard)",
    )
    parser.add_argument(
        "--dump-config",
        action="store_true",
        help="Print an example config and exit",
    )
    args = parser.parse_args(argv)

    if args.dump_config:
        print(dump_default_config(), end="")
        return

    if args.log_file is not None:
        logging.basicConfig(
            filename=args.log_file,
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    config = load_config(args.config)
    app = build_app(config)
    logger.info("starting with %d server(s)", len(app.targets))
    try:
        curses.wrapper(_dashboard_loop, app, TICK_RATE)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
