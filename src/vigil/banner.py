"""Startup banner — what the relay is about to serve and listen to.

Colour is used only when stderr is a terminal and neither ``NO_COLOR``
(https://no-color.org) nor ``TERM=dumb`` is set.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vigil.config import VigilConfig

_SGR = {"bold": "1", "dim": "2", "green": "32", "yellow": "33", "cyan": "36"}


def _color_enabled() -> bool:
    if os.environ.get("NO_COLOR") or os.environ.get("TERM") == "dumb":
        return False
    isatty = getattr(sys.stderr, "isatty", None)
    return bool(isatty and isatty())


def _paint(text: str, *styles: str, color: bool) -> str:
    if not color or not styles:
        return text
    codes = ";".join(_SGR[s] for s in styles)
    return f"\033[{codes}m{text}\033[0m"


def render_banner(
    config: VigilConfig,
    *,
    route_count: int = 0,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
    color: bool | None = None,
) -> str:
    """Build the banner text (without printing it).

    Args:
        config: Resolved configuration.
        route_count: Routes registered on the app.
        load_ms: Time spent building the app.
        warnings: Lines shown after the URL (e.g. live updates disabled).
        color: Force colour on or off; detected from stderr when None.

    """
    from vigil import __version__

    if color is None:
        color = _color_enabled()
    branch = _paint("├─", "dim", color=color)

    routes = f"{route_count} {'route' if route_count == 1 else 'routes'} registered"
    if load_ms > 0:
        routes += " " + _paint(f"in {load_ms:.0f}ms", "dim", color=color)

    lines = [
        "",
        f"  {_paint('vigil', 'bold', color=color)} {_paint(f'v{__version__}', 'dim', color=color)}",
        "  " + _paint("─" * 43, "dim", color=color),
        f"  {branch} {routes}",
    ]

    channels = config.channel_names()
    if channels:
        listed = ", ".join(f"{ch.value}={name}" for ch, name in channels.items())
        lines.append(f"  {branch} {_paint('live', 'green', color=color)} channels: {listed}")
    if config.pg_host:
        target = f"{config.pg_host}:{config.pg_port}/{config.pg_database or '?'}"
        lines.append(f"  {branch} database: {_paint(target, 'dim', color=color)}")
    lines.append(f"  {_paint('└─', 'dim', color=color)} workers: {config.workers}")

    lines += ["", "  " + _paint(f"http://{config.host}:{config.port}", "bold", "cyan", color=color)]

    if warnings:
        lines.append("")
        lines.extend(f"  {_paint('!', 'yellow', color=color)} {w}" for w in warnings)

    lines.append("")
    return "\n".join(lines)


def print_banner(
    config: VigilConfig,
    *,
    route_count: int = 0,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
) -> None:
    """Print the startup banner to stderr."""
    print(
        render_banner(config, route_count=route_count, load_ms=load_ms, warnings=warnings),
        file=sys.stderr,
    )
