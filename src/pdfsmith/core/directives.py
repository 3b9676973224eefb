"""Page directives written as HTML comments in Markdown sources.

A directive looks like ``<!-- pdfsmith COMMAND ARG... -->``. Directives are
parsed and validated for the whole page before any of them is applied, so a
malformed directive never leaves a page half-processed.

``<!-- pdfsmith -->`` / ``<!-- pdfsmith include -->``
: Opt the page in when explicit mode is active.

``<!-- pdfsmith ignore -->``
: Never render the page, even when it is listed in a collated document.

``<!-- pdfsmith collate NAME PAGE... -->``
: Merge the listed pages (paths or glob patterns relative to the docs
  directory) into ``NAME.pdf`` next to the current page. Replaced by a
  relative link to the merged file.

``<!-- pdfsmith pagebreak -->``
: Force a page break in the printed document.

``<!-- pdfsmith noprint -->``
: Expand to the CSS class hiding an element from print.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import fnmatch
from pathlib import PurePosixPath
import re
import shlex
from types import MappingProxyType
from typing import Protocol

from .collation import CollationGroup, build_collation
from .exceptions import DirectiveError
from .markup import CLASS_NO_PRINT, CLASS_PAGE_BREAK


DIRECTIVE_PATTERN = re.compile(r"<!--\s*pdfsmith\b(?P<body>.*?)-->", re.DOTALL)
_GLOB_CHARS = frozenset("*?[")


class DirectiveSink(Protocol):
    """Receiver of the declarations made by page directives."""

    def include(self, input_path: str) -> None: ...

    def ignore(self, input_path: str) -> None: ...

    def add_collation(self, group: CollationGroup) -> None: ...


@dataclass(frozen=True, slots=True)
class PageContext:
    """Page information available to directives."""

    input_path: str
    output_path: PurePosixPath
    available: Sequence[str] = ()


@dataclass(frozen=True, slots=True)
class IncludeDirective:
    name: str = "include"
    min_args: int = 0
    max_args: int | None = 0

    def apply(self, args: Sequence[str], page: PageContext, sink: DirectiveSink) -> str:
        sink.include(page.input_path)
        return ""


@dataclass(frozen=True, slots=True)
class IgnoreDirective:
    name: str = "ignore"
    min_args: int = 0
    max_args: int | None = 0

    def apply(self, args: Sequence[str], page: PageContext, sink: DirectiveSink) -> str:
        sink.ignore(page.input_path)
        return ""


@dataclass(frozen=True, slots=True)
class CollateDirective:
    name: str = "collate"
    min_args: int = 1
    max_args: int | None = None

    def apply(self, args: Sequence[str], page: PageContext, sink: DirectiveSink) -> str:
        out_name, *patterns = args
        members = [expand_member(pattern, page.available) for pattern in patterns]
        group = build_collation(out_name, members, caller_output=page.output_path)
        sink.add_collation(group)
        return f"./{group.output_path.name}"


@dataclass(frozen=True, slots=True)
class PageBreakDirective:
    name: str = "pagebreak"
    min_args: int = 0
    max_args: int | None = 0

    def apply(self, args: Sequence[str], page: PageContext, sink: DirectiveSink) -> str:
        return f'<div class="{CLASS_PAGE_BREAK}"></div>'


@dataclass(frozen=True, slots=True)
class NoPrintDirective:
    name: str = "noprint"
    min_args: int = 0
    max_args: int | None = 0

    def apply(self, args: Sequence[str], page: PageContext, sink: DirectiveSink) -> str:
        return CLASS_NO_PRINT


Directive = (
    IncludeDirective | IgnoreDirective | CollateDirective | PageBreakDirective | NoPrintDirective
)

DIRECTIVES: Mapping[str, Directive] = MappingProxyType(
    {
        directive.name: directive
        for directive in (
            IncludeDirective(),
            IgnoreDirective(),
            CollateDirective(),
            PageBreakDirective(),
            NoPrintDirective(),
        )
    }
)


@dataclass(frozen=True, slots=True)
class Invocation:
    """A directive bound to its validated arguments."""

    directive: Directive
    args: tuple[str, ...]
    span: tuple[int, int]


def parse_invocation(body: str, span: tuple[int, int] = (0, 0)) -> Invocation:
    """Resolve a directive body such as ``collate report a.md`` to its variant."""
    try:
        tokens = shlex.split(body)
    except ValueError as exc:
        raise DirectiveError(f"Malformed pdfsmith directive '{body.strip()}': {exc}") from exc
    command = tokens[0] if tokens else "include"
    args = tuple(tokens[1:])
    directive = DIRECTIVES.get(command)
    if directive is None:
        known = ", ".join(sorted(DIRECTIVES))
        raise DirectiveError(f"Unknown pdfsmith directive '{command}' (expected one of: {known}).")
    if len(args) < directive.min_args:
        raise DirectiveError(
            f"Directive '{command}' expects at least {directive.min_args} argument(s)."
        )
    if directive.max_args is not None and len(args) > directive.max_args:
        raise DirectiveError(
            f"Directive '{command}' accepts at most {directive.max_args} argument(s)."
        )
    return Invocation(directive, args, span)


def expand_member(pattern: str, available: Sequence[str]) -> list[str]:
    """Expand a glob pattern against the known pages, keeping literal paths."""
    normalised = pattern.strip().removeprefix("./")
    if not _GLOB_CHARS.intersection(normalised):
        return [normalised]
    return sorted(path for path in available if fnmatch.fnmatchcase(path, normalised))


def apply_directives(markdown: str, page: PageContext, sink: DirectiveSink) -> str:
    """Apply every directive found in ``markdown`` and return the rewritten text."""
    invocations = [
        parse_invocation(match.group("body"), match.span())
        for match in DIRECTIVE_PATTERN.finditer(markdown)
    ]
    if not invocations:
        return markdown
    pieces: list[str] = []
    cursor = 0
    for invocation in invocations:
        start, end = invocation.span
        pieces.append(markdown[cursor:start])
        pieces.append(invocation.directive.apply(invocation.args, page, sink))
        cursor = end
    pieces.append(markdown[cursor:])
    return "".join(pieces)


__all__ = [
    "DIRECTIVES",
    "DIRECTIVE_PATTERN",
    "CollateDirective",
    "Directive",
    "DirectiveSink",
    "IgnoreDirective",
    "IncludeDirective",
    "Invocation",
    "NoPrintDirective",
    "PageBreakDirective",
    "PageContext",
    "apply_directives",
    "expand_member",
    "parse_invocation",
]
