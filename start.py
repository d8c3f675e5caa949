"""Run llmcp from a source checkout without installing the package."""

from __future__ import annotations

import sys
from pathlib import Path

SRC = Path(__file__).resolve().parent / "src"


def run(argv: list[str] | None = None) -> int:
    if str(SRC) not in sys.path:
        sys.path.insert(0, str(SRC))
    from llmcp.cli import main

    return main(sys.argv[1:] if argv is None else argv)


if __name__ == "__main__":
    raise SystemExit(run())
