# style_guard/diff_parser.py
import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import reduce
from typing import Iterable, NamedTuple

logger = logging.getLogger(__name__)

FILE_HEADER_PREFIX = "+++ b/"
HUNK_HEADER_PREFIX = "@@ "

# only the new-file range matters; the count is omitted by diff tools when it is 1
_NEW_RANGE_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")


class DiffConvention(str, Enum):
    """How a hosting platform separates the files of a multi-file diff."""

    GIT_STYLE = "git-style"
    DASH_STYLE = "dash-style"

    @property
    def separator(self) -> str:
        if self is DiffConvention.DASH_STYLE:
            return "\n---"
        return "\ndiff --git"


def sanitize_diff(diff_text: str | bytes | None) -> str:
    """
    Replace invalid byte sequences with U+FFFD instead of failing.

    Hosting APIs occasionally return diffs with broken encoding.
    """
    if not diff_text:
        return ""
    if isinstance(diff_text, bytes):
        return diff_text.decode("utf-8", errors="replace")
    return diff_text.encode("utf-8", errors="surrogatepass").decode("utf-8", errors="replace")


def split_diff(diff_text: str | bytes | None, convention: DiffConvention) -> list[str]:
    """
    Split a raw diff into per-file patch blocks, preserving file order.

    Text without any separator comes back as a single block.
    """
    segments = sanitize_diff(diff_text).split(convention.separator)
    return [segment for segment in segments if segment]


@dataclass(frozen=True)
class FileFilter:
    accepted_suffixes: tuple[str, ...]
    ignore_patterns: tuple[re.Pattern, ...] = ()

    @classmethod
    def build(cls, accepted_suffixes: Iterable[str], ignore_patterns=None) -> "FileFilter":
        # a lone suffix or pattern is accepted as well as a list of them
        if isinstance(accepted_suffixes, str):
            accepted_suffixes = (accepted_suffixes,)
        if ignore_patterns is None:
            ignore_patterns = ()
        elif isinstance(ignore_patterns, (str, re.Pattern)):
            ignore_patterns = (ignore_patterns,)

        return cls(
            accepted_suffixes=tuple(accepted_suffixes),
            ignore_patterns=tuple(re.compile(p) for p in ignore_patterns),
        )

    def accepts(self, path: str) -> bool:
        if not path.endswith(self.accepted_suffixes):
            return False
        return not any(pattern.search(path) for pattern in self.ignore_patterns)


def extract_file_path(patch: str) -> str | None:
    for line in patch.split("\n"):
        if line.startswith(FILE_HEADER_PREFIX):
            return line[len(FILE_HEADER_PREFIX):].rstrip("\r")
    return None


def parse_hunk_start(header: str) -> int | None:
    """Return the new-file start line of a hunk header, or None if malformed."""
    match = _NEW_RANGE_RE.match(header)
    if not match:
        return None
    return int(match.group(1))


class _Walk(NamedTuple):
    cursor: int  # -1 until the first hunk header
    hunk_start: int
    added: list[int]


def _step(state: _Walk, line: str) -> _Walk:
    if line.startswith(HUNK_HEADER_PREFIX):
        hunk_start = parse_hunk_start(line)
        if hunk_start is None:
            return _Walk(-1, 0, state.added)
        return _Walk(0, hunk_start, state.added)

    if state.cursor < 0:
        return state

    if line.startswith("+"):
        state.added.append(state.hunk_start + state.cursor)

    # deletions and "\ No newline at end of file" markers take no line in the new file
    if line.startswith("-") or line.startswith("\\"):
        return state
    return _Walk(state.cursor + 1, state.hunk_start, state.added)


def added_line_numbers(patch: str) -> list[int]:
    """Absolute new-file line numbers of every added line, in encounter order."""
    return reduce(_step, patch.split("\n"), _Walk(-1, 0, [])).added


def locate_added_lines(
    patch: str,
    accepted_suffixes: Iterable[str],
    ignore_patterns=None,
) -> tuple[str | None, list[int]]:
    """
    Find the file a patch block belongs to and the lines it adds.

    Blocks without a ``+++ b/`` header, with a suffix outside
    ``accepted_suffixes`` or matching one of ``ignore_patterns`` are not
    applicable and yield ``(None, [])``.
    """
    path = extract_file_path(patch)
    if path is None:
        return None, []

    if not FileFilter.build(accepted_suffixes, ignore_patterns).accepts(path):
        return None, []

    return path, added_line_numbers(patch)


def get_changes(
    diff_text: str | bytes | None,
    convention: DiffConvention,
    accepted_suffixes: Iterable[str],
    ignore_patterns=None,
) -> dict[str, list[int]]:
    file_filter = FileFilter.build(accepted_suffixes, ignore_patterns)
    changes: dict[str, list[int]] = {}

    for patch in split_diff(diff_text, convention):
        path, lines = locate_added_lines(
            patch, file_filter.accepted_suffixes, file_filter.ignore_patterns
        )
        if path is None or not lines:
            continue
        changes[path] = lines

    logger.debug("Found added lines in %d file(s)", len(changes))
    return changes
