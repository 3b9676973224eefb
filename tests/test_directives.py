from __future__ import annotations

from pathlib import PurePosixPath

import pytest

from pdfsmith.core.collation import CollationGroup
from pdfsmith.core.directives import (
    DIRECTIVES,
    CollateDirective,
    IncludeDirective,
    PageContext,
    apply_directives,
    expand_member,
    parse_invocation,
)
from pdfsmith.core.exceptions import DirectiveError
from pdfsmith.core.markup import CLASS_NO_PRINT, CLASS_PAGE_BREAK


class RecordingSink:
    def __init__(self) -> None:
        self.included: list[str] = []
        self.ignored: list[str] = []
        self.groups: list[CollationGroup] = []

    def include(self, input_path: str) -> None:
        self.included.append(input_path)

    def ignore(self, input_path: str) -> None:
        self.ignored.append(input_path)

    def add_collation(self, group: CollationGroup) -> None:
        self.groups.append(group)


PAGES = ["index.md", "chapters/01-intro.md", "chapters/02-usage.md", "chapters/notes.md", "a.md"]


def _context(input_path: str = "index.md") -> PageContext:
    return PageContext(
        input_path=input_path,
        output_path=PurePosixPath(input_path).with_suffix(".pdf"),
        available=PAGES,
    )


def test_directive_table_is_closed() -> None:
    assert set(DIRECTIVES) == {"include", "ignore", "collate", "pagebreak", "noprint"}
    with pytest.raises(TypeError):
        DIRECTIVES["extra"] = IncludeDirective()  # type: ignore[index]


def test_empty_body_means_include() -> None:
    invocation = parse_invocation("  ")

    assert isinstance(invocation.directive, IncludeDirective)
    assert invocation.args == ()


def test_collate_arguments_are_shell_split() -> None:
    invocation = parse_invocation(' collate "my book" a.md b.md ')

    assert isinstance(invocation.directive, CollateDirective)
    assert invocation.args == ("my book", "a.md", "b.md")


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ("explode", "Unknown pdfsmith directive 'explode'"),
        ("collate", "at least 1 argument"),
        ("pagebreak now", "at most 0 argument"),
        ("ignore me", "at most 0 argument"),
        ('collate "book a.md', "Malformed"),
    ],
)
def test_invalid_directives_raise(body: str, message: str) -> None:
    with pytest.raises(DirectiveError, match=message):
        parse_invocation(body)


def test_expand_member_keeps_literal_paths() -> None:
    assert expand_member("./a.md", PAGES) == ["a.md"]
    assert expand_member("missing.md", PAGES) == ["missing.md"]


def test_expand_member_sorts_glob_matches() -> None:
    assert expand_member("chapters/0*.md", PAGES) == [
        "chapters/01-intro.md",
        "chapters/02-usage.md",
    ]
    assert expand_member("nothing/*.md", PAGES) == []


def test_apply_directives_rewrites_markdown() -> None:
    sink = RecordingSink()
    markdown = (
        "<!-- pdfsmith -->\n"
        "# Title\n\n"
        "[Download](<!-- pdfsmith collate book a.md chapters/*.md -->)\n\n"
        "<!-- pdfsmith pagebreak -->\n"
        '<div class="<!-- pdfsmith noprint -->">web only</div>\n'
    )

    result = apply_directives(markdown, _context(), sink)

    assert sink.included == ["index.md"]
    assert "[Download](./book.pdf)" in result
    assert f'<div class="{CLASS_PAGE_BREAK}"></div>' in result
    assert f'<div class="{CLASS_NO_PRINT}">web only</div>' in result
    assert "pdfsmith" not in result.replace(CLASS_PAGE_BREAK, "").replace(CLASS_NO_PRINT, "")
    [group] = sink.groups
    assert group.output_path == PurePosixPath("book.pdf")
    assert group.members == [
        "a.md",
        "chapters/01-intro.md",
        "chapters/02-usage.md",
        "chapters/notes.md",
    ]


def test_collated_file_lands_next_to_declaring_page() -> None:
    sink = RecordingSink()

    result = apply_directives(
        "<!-- pdfsmith collate part chapters/01-intro.md -->",
        _context("chapters/index.md"),
        sink,
    )

    assert result == "./part.pdf"
    assert sink.groups[0].output_path == PurePosixPath("chapters/part.pdf")


def test_ignore_directive_forwards_page() -> None:
    sink = RecordingSink()

    apply_directives("text <!-- pdfsmith ignore --> more", _context("a.md"), sink)

    assert sink.ignored == ["a.md"]


def test_invalid_directive_leaves_page_untouched() -> None:
    sink = RecordingSink()
    markdown = "<!-- pdfsmith include -->\n<!-- pdfsmith bogus -->\n"

    with pytest.raises(DirectiveError):
        apply_directives(markdown, _context(), sink)
    assert sink.included == []


def test_markdown_without_directives_is_returned_unchanged() -> None:
    sink = RecordingSink()
    markdown = "# Plain\n\n<!-- a regular comment -->\n"

    assert apply_directives(markdown, _context(), sink) == markdown
