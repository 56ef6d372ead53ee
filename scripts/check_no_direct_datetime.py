"""Fail when package code reads the wall clock without the time provider.

Run ``python scripts/check_no_direct_datetime.py``; exit status 1 lists each
offending ``path:line``.
"""
from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Iterator, NamedTuple


ROOT = Path(__file__).resolve().parents[1]
PACKAGE_DIR = ROOT / "dormmate"
ALLOWED = ("dormmate/core/time_provider.py",)

CLOCK_CALL = re.compile(r"\b(?:datetime\.(?:now|utcnow|today)|date\.today|time\.time)\(")


class ClockCall(NamedTuple):
    path: str
    line_no: int
    source: str

    def __str__(self) -> str:
        return f"{self.path}:{self.line_no}: {self.source}"


def _allowed(path: Path) -> bool:
    return path.as_posix().endswith(ALLOWED)


def iter_clock_calls(package_dir: Path = PACKAGE_DIR, root: Path = ROOT) -> Iterator[ClockCall]:
    for file_path in sorted(package_dir.rglob("*.py")):
        if _allowed(file_path):
            continue
        for line_no, line in enumerate(file_path.read_text(encoding="utf-8").splitlines(), start=1):
            if line.lstrip().startswith("#"):
                continue
            if CLOCK_CALL.search(line):
                yield ClockCall(file_path.relative_to(root).as_posix(), line_no, line.strip())


def main() -> int:
    found = list(iter_clock_calls())
    if not found:
        print("dormmate/ reads the clock only through TimeProvider.")
        return 0
    print(f"{len(found)} direct clock call(s); route them through dormmate.core.time_provider:")
    for call in found:
        print(f"  {call}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
