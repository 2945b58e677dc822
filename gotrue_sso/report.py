"""Formats diagnostics and provider records as terminal output or JSON.

Two output modes are supported:

- **Terminal** — ANSI-colored lines, one per diagnostic, followed by a
  summary line with error/warning counts.
- **JSON** — ``summary``, ``diagnostics`` and (when there is one) ``provider``
  keys, suitable for CI pipelines.
"""

import json
import sys
from typing import Any, Dict, List, Optional

from .validators import ERROR, WARNING, Diagnostic


def _colorize(text: str, color: str) -> str:
    """Apply ANSI color codes.  Returns plain text when stdout is not a TTY."""
    colors = {
        "red": "\033[91m",
        "green": "\033[92m",
        "yellow": "\033[93m",
        "bold": "\033[1m",
        "dim": "\033[2m",
        "reset": "\033[0m",
    }
    if not sys.stdout.isatty():
        return text
    return f"{colors.get(color, '')}{text}{colors['reset']}"


# Maps severity to (display label, ANSI color)
_SEVERITY_SYMBOLS = {
    ERROR: ("ERROR", "red"),
    WARNING: ("WARN ", "yellow"),
}


def summarize(diagnostics: List[Diagnostic]) -> Dict[str, int]:
    errors = sum(1 for d in diagnostics if d.severity == ERROR)
    warnings = sum(1 for d in diagnostics if d.severity == WARNING)
    return {"total": len(diagnostics), "errors": errors, "warnings": warnings}


def print_diagnostics(
    diagnostics: List[Diagnostic],
    json_output: bool = False,
    provider: Optional[Dict[str, Any]] = None,
    success_message: str = "",
):
    """Print diagnostics (and optionally the resulting record) in terminal or JSON format."""
    if json_output:
        _print_json(diagnostics, provider)
    else:
        _print_terminal(diagnostics, provider, success_message)


def _print_terminal(
    diagnostics: List[Diagnostic],
    provider: Optional[Dict[str, Any]],
    success_message: str,
):
    for d in diagnostics:
        symbol, color = _SEVERITY_SYMBOLS.get(d.severity, ("?????", "dim"))
        loc = f" {_colorize(f'({d.path})', 'dim')}" if d.path else ""
        print(f"[{_colorize(symbol, color)}] {d.summary}{loc}")
        if d.detail:
            print(f"        {_colorize(d.detail, 'dim')}")

    counts = summarize(diagnostics)
    if counts["errors"]:
        parts = [_colorize(f"{counts['errors']} error(s)", "red")]
        if counts["warnings"]:
            parts.append(_colorize(f"{counts['warnings']} warning(s)", "yellow"))
        print()
        print(f"Found {', '.join(parts)}")
        return

    if provider:
        print(json.dumps(provider, indent=2))
    if success_message:
        print(_colorize(f"✅ {success_message}", "green"))


def _print_json(diagnostics: List[Diagnostic], provider: Optional[Dict[str, Any]]):
    output: Dict[str, Any] = {
        "summary": summarize(diagnostics),
        "diagnostics": [d.to_dict() for d in diagnostics],
    }
    if provider:
        output["provider"] = provider
    print(json.dumps(output, indent=2))
