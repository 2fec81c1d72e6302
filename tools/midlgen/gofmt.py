"""
Formatter: pipes generated Go source through gofmt.

gofmt doubles as the syntax check for the generator's output. Anything it
rejects is a generator defect, reported as a FormatError carrying the raw
buffer so it can be dumped for diagnosis.
"""

import subprocess
from typing import Sequence

from .errors import FormatError

DEFAULT_COMMAND = ("gofmt",)


def format_source(src: str, command: Sequence[str] = DEFAULT_COMMAND) -> str:
    """Return src as formatted by gofmt, or raise FormatError."""
    try:
        result = subprocess.run(list(command), input=src,
                                capture_output=True, text=True)
    except FileNotFoundError:
        raise FormatError(
            f"{command[0]} not found (install Go or pass --no-format)", src)

    if result.returncode != 0:
        raise FormatError(
            f"generated code will not format!: {result.stderr.strip()}", src)
    return result.stdout
