"""
Formatter - run clang-format on selected lines and diff the result
"""

import logging
import subprocess
from dataclasses import dataclass
from difflib import unified_diff

from .errors import FormatterError

logger = logging.getLogger(__name__)


def build_lines_args(lines: list[int]) -> list[str]:
    """One ``-lines=N:N`` range per added line"""
    return [f"-lines={line}:{line}" for line in lines]


def format_source(
    source: str,
    file_name: str,
    lines: list[int],
    binary: str = "clang-format",
    style: str = "file",
) -> str:
    """Format only the given lines of ``source`` and return the whole reformatted text"""
    command = [
        binary,
        f"-style={style}",
        f"--assume-filename={file_name}",
        *build_lines_args(lines),
    ]
    logger.debug("Running %s", " ".join(command))

    try:
        completed = subprocess.run(
            command,
            input=source,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as e:
        raise FormatterError(f"Cannot run formatter {binary!r}: {e}") from e

    if completed.returncode != 0:
        raise FormatterError(
            f"{binary} exited with {completed.returncode} for {file_name}: {completed.stderr.strip()}"
        )
    return completed.stdout


def diff_sources(original: str, formatted: str, file_name: str) -> str:
    """Unified diff between original and formatted text, both sides labelled with the file name"""
    original_lines = original.splitlines(keepends=True)
    formatted_lines = formatted.splitlines(keepends=True)

    # Ensure last lines have newlines for proper diff
    if original_lines and not original_lines[-1].endswith("\n"):
        original_lines[-1] += "\n"
    if formatted_lines and not formatted_lines[-1].endswith("\n"):
        formatted_lines[-1] += "\n"

    return "".join(
        unified_diff(
            original_lines,
            formatted_lines,
            fromfile=file_name,
            tofile=file_name,
        )
    )


@dataclass(frozen=True)
class ClangFormatter:
    """Formatter bound to one binary and style"""

    binary: str = "clang-format"
    style: str = "file"

    def patch_for(self, source: str, file_name: str, lines: list[int]) -> str:
        formatted = format_source(source, file_name, lines, binary=self.binary, style=self.style)
        return diff_sources(source, formatted, file_name)
