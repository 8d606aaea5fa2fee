"""
Loom CLI - output toolkit.

Styled output primitives built on Click:

    Messages:
        success(), error(), warning(), dim(), bold()

    Structure:
        banner()        header with box drawing
        section()       section divider with title
        kv()            aligned key-value pair
        bullet()        bulleted list item
        step()          numbered build step
        table()         minimal aligned table

Error output goes to stderr so that --json output stays machine-readable.
click.style handles NO_COLOR / TERM=dumb.
"""

from __future__ import annotations

import shutil
from typing import Optional, Sequence

import click

# ═══════════════════════════════════════════════════════════════════════════
# Terminal helpers
# ═══════════════════════════════════════════════════════════════════════════

_TERM_WIDTH: Optional[int] = None


def _tw() -> int:
    """Terminal width, cached and clamped."""
    global _TERM_WIDTH
    if _TERM_WIDTH is None:
        _TERM_WIDTH = max(40, min(shutil.get_terminal_size((80, 24)).columns, 100))
    return _TERM_WIDTH


# ═══════════════════════════════════════════════════════════════════════════
# Messages
# ═══════════════════════════════════════════════════════════════════════════


def success(message: str) -> None:
    """Print success message in green."""
    click.echo(click.style(message, fg="green"))


def error(message: str) -> None:
    """Print error message in red, to stderr."""
    click.echo(click.style(message, fg="red"), err=True)


def warning(message: str) -> None:
    """Print warning message in yellow, to stderr."""
    click.echo(click.style(message, fg="yellow"), err=True)


def dim(message: str) -> str:
    return click.style(message, dim=True)


def bold(message: str) -> str:
    """Return bold-styled text (does not echo)."""
    return click.style(message, bold=True)


# ═══════════════════════════════════════════════════════════════════════════
# Glyphs
# ═══════════════════════════════════════════════════════════════════════════

_H_TL = "┏"
_H_TR = "┓"
_H_BL = "┗"
_H_BR = "┛"
_H_H  = "━"
_H_V  = "┃"
_L_H  = "─"

_BULLET = "•"
_ARROW  = "→"
_CHECK  = "✓"
_CROSS  = "✗"
_LOCK   = "⚿"


# ═══════════════════════════════════════════════════════════════════════════
# Structure
# ═══════════════════════════════════════════════════════════════════════════


def banner(title: str = "Loom", subtitle: str = "", *, fg: str = "cyan") -> None:
    """
    Print a bordered banner with centred title.

        ┏━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━┓
        ┃                       Loom                          ┃
        ┃        manifest resolution for wasm apps            ┃
        ┗━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━┛
    """
    inner = min(_tw(), 60) - 2
    click.echo(click.style(f"{_H_TL}{_H_H * inner}{_H_TR}", fg=fg))
    click.echo(click.style(f"{_H_V}{title.center(inner)}{_H_V}", fg=fg, bold=True))
    if subtitle:
        click.echo(click.style(f"{_H_V}{subtitle.center(inner)}{_H_V}", fg=fg))
    click.echo(click.style(f"{_H_BL}{_H_H * inner}{_H_BR}", fg=fg))


def section(title: str, *, fg: str = "cyan") -> None:
    """
    Print a section header with a ruled line.

        ── Components ─────────────────────────────
    """
    dashes = max(4, _tw() - len(title) - 6)
    click.echo(click.style(f"{_L_H}{_L_H} {title} {_L_H * dashes}", fg=fg, bold=True))


def kv(key: str, value: str, *, key_width: int = 20, indent: int = 2) -> None:
    """
    Print an aligned key-value pair.

        Components:       4
        Fingerprint:      3f9a0c…
    """
    k = click.style(f"{key}:", fg="white")
    v = click.style(str(value), fg="cyan")
    padding = " " * max(1, key_width - len(key) - 1)
    click.echo(f"{' ' * indent}{k}{padding}{v}")


def bullet(text: str, *, indent: int = 2, fg: str = "white") -> None:
    """Print a bulleted list item."""
    prefix = " " * indent
    click.echo(f"{prefix}{click.style(_BULLET, fg='cyan')} {click.style(text, fg=fg)}")


def step(number: int, text: str, *, fg: str = "cyan") -> None:
    """
    Print a numbered step.

        [1] cargo build --target wasm32-wasip1
        [2] tinygo build -o main.wasm
    """
    num = click.style(f"[{number}]", fg=fg, bold=True)
    click.echo(f"  {num} {text}")


def table(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    *,
    indent: int = 2,
) -> None:
    """
    Print a minimal aligned table.

        Component     Source      Dependencies
        ───────────── ─────────── ─────────────
        api           local       1
    """
    prefix = " " * indent
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[: len(headers)]):
            widths[i] = max(widths[i], len(str(cell)))
    widths = [w + 2 for w in widths]

    header = "".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    click.echo(f"{prefix}{click.style(header, fg='cyan', bold=True)}")
    click.echo(f"{prefix}{click.style(''.join(_L_H * w for w in widths), dim=True)}")
    for row in rows:
        line = "".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row[: len(headers)]))
        click.echo(f"{prefix}{line}")
