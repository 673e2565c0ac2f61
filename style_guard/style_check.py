# style_guard/style_check.py
import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from .diff_parser import get_changes
from .formatter import ClangFormatter
from .models import CheckResult, FileViolation, StyleCheckConfig
from .scm import ScmProvider

logger = logging.getLogger(__name__)

VIOLATION_ERROR_MESSAGE = "Code style violations detected."

SourceReader = Callable[[str], Awaitable[Optional[str]]]


def extensions_label(extensions: list[str]) -> str:
    quoted = [f"`{ext}`" for ext in extensions]
    if len(quoted) <= 1:
        return "".join(quoted)
    return ", ".join(quoted[:-1]) + " and " + quoted[-1]


def generate_markdown(title: str, content: str) -> str:
    return f"#### {title}\n```diff\n{content.rstrip()}\n```\n"


def render_report(violations: list[FileViolation], extensions: list[str]) -> str:
    sections = [f"### Code Style Check ({extensions_label(extensions)})", "---"]
    sections.extend(generate_markdown(v.path, v.patch) for v in violations)
    return "\n\n".join(sections)


def workspace_reader(root: str) -> SourceReader:
    """Read changed files from a local checkout, the way a CI job sees them."""
    base = Path(root).resolve()

    async def read_source(path: str) -> Optional[str]:
        target = (base / path).resolve()
        if not target.is_relative_to(base) or not target.is_file():
            logger.warning(f"Changed file not found in workspace: {path}")
            return None
        return target.read_text(encoding="utf-8", errors="replace")

    return read_source


async def resolve_changes(
    changes: dict[str, list[int]],
    read_source: SourceReader,
    formatter,
) -> list[FileViolation]:
    """Run the formatter on exactly the added lines of every changed file."""
    violations = []

    for path, lines in changes.items():
        source = await read_source(path)
        if source is None:
            continue

        patch = await asyncio.to_thread(formatter.patch_for, source, path, lines)
        if patch:
            logger.info(f"Style violations in {path} ({len(lines)} added lines checked)")
            violations.append(FileViolation(path=path, patch=patch))

    return violations


async def run_check(
    provider,
    diff_text: str | bytes | None,
    config: StyleCheckConfig,
    read_source: Optional[SourceReader] = None,
    formatter=None,
) -> CheckResult:
    provider = ScmProvider.resolve(provider)
    changes = get_changes(
        diff_text,
        provider.convention,
        config.extensions,
        config.ignore_file_patterns,
    )
    logger.info(f"{len(changes)} file(s) with added lines to check")

    if read_source is None:
        return CheckResult(changes=changes)

    formatter = formatter or ClangFormatter(style=config.formatter_style)
    violations = await resolve_changes(changes, read_source, formatter)
    markdown = render_report(violations, config.extensions) if violations else ""
    return CheckResult(changes=changes, violations=violations, markdown=markdown)


async def check_pull_request(
    provider,
    fetch_diff: Callable[[ScmProvider], Awaitable[str]],
    config: StyleCheckConfig,
    read_source: Optional[SourceReader] = None,
    formatter=None,
) -> CheckResult:
    # an unknown provider must fail before any diff is requested
    provider = ScmProvider.resolve(provider)
    diff_text = await fetch_diff(provider)
    return await run_check(provider, diff_text, config, read_source, formatter)
