"""Collation groups: ordered sets of pages merged into a single PDF."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any

from .config import normalise_collate_name
from .exceptions import DirectiveError
from .targets import RenderTarget


@dataclass(slots=True)
class CollationGroup:
    """Ordered members destined for one merged document.

    Member order is the page order of the merged output and is never sorted.
    """

    output_path: PurePosixPath
    members: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.members:
            raise DirectiveError(
                f"Collated document '{self.output_path}' needs at least one page."
            )

    def without(self, excluded: Collection[str]) -> CollationGroup | None:
        """Return a copy without ``excluded`` members, or None when nothing is left."""
        kept = [member for member in self.members if member not in excluded]
        if not kept:
            return None
        return CollationGroup(self.output_path, kept)

    def is_stale(
        self,
        targets: Mapping[str, RenderTarget],
        reference: float | None,
        *,
        first_pass: bool,
    ) -> bool:
        """Return True when the merged file has to be rewritten."""
        if first_pass:
            return True
        return any(targets[member].is_stale(reference) for member in self.members)

    def buffers(self, targets: Mapping[str, RenderTarget]) -> list[bytes]:
        """Return member buffers in declared order; renders must have settled."""
        return [targets[member].result() for member in self.members]


def build_collation(
    name: Any,
    members: Any,
    *,
    caller_output: PurePosixPath | str,
) -> CollationGroup:
    """Validate a collate declaration and build its group.

    ``caller_output`` is the output path of the page declaring the group; the
    merged document is written next to it.
    """
    if not isinstance(name, str) or not name.strip():
        raise DirectiveError("You need to provide a name for your collated file.")
    if isinstance(members, (str, bytes)) or not isinstance(members, Iterable):
        raise DirectiveError(
            "Collated pages must be given as a list of page paths, "
            f"got {type(members).__name__}."
        )
    ordered = _flatten_members(members)
    if not ordered:
        raise DirectiveError(f"Collated file '{name}' does not list any page.")
    output_path = PurePosixPath(str(caller_output)).parent / normalise_collate_name(name)
    return CollationGroup(output_path, ordered)


def _flatten_members(members: Iterable[Any]) -> list[str]:
    ordered: list[str] = []
    for entry in members:
        if isinstance(entry, str):
            if entry.strip():
                ordered.append(entry.strip())
            continue
        if isinstance(entry, Sequence) and not isinstance(entry, bytes):
            ordered.extend(_flatten_members(entry))
            continue
        raise DirectiveError(
            f"Invalid value {type(entry).__name__} - only page paths and "
            "collections of page paths may be collated."
        )
    return ordered


__all__ = ["CollationGroup", "build_collation"]
