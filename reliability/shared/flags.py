"""``--key=value`` flag parsing shared by the command line tools.

Every flag is optional and string valued. A bare flag (``--quick``) always
means ``"true"`` and never takes the following token as its value. Unknown
flags and positional tokens are ignored, so wrapper scripts can pass a
superset of options to every tool.
"""

import argparse
import math
import sys
from collections.abc import Iterable, Sequence


def build_flag_parser(description: str, names: Iterable[str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description, allow_abbrev=False)
    for name in names:
        parser.add_argument(f"--{name}", dest=name, default=None)
    return parser


def _explicit(arg: str) -> str:
    if arg.startswith("--") and "=" not in arg and arg != "--help":
        return f"{arg}=true"
    return arg


def parse_flags(parser: argparse.ArgumentParser, argv: Sequence[str] | None = None) -> dict[str, str]:
    """Parse *argv* and return only the flags that were given, keyed by flag name."""
    args = sys.argv[1:] if argv is None else argv
    namespace, _unknown = parser.parse_known_args([_explicit(arg) for arg in args])
    return {key: value for key, value in vars(namespace).items() if value is not None}


def to_number(value: str | None, fallback: float | None) -> float | None:
    """Permissive numeric parsing: anything unparsable yields *fallback*."""
    if value is None:
        return fallback
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if math.isfinite(parsed) else fallback
