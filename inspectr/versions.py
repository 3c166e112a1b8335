"""
Image tag comparison for inspectr.

Tags are only compared against tags of the same shape as the deployed one:
same ``v`` prefix, same ``-suffix`` and the same number of numeric
components.  Anything else is simply "not an upgrade".
"""

from dataclasses import dataclass
from typing import Collection, Iterable, List, Tuple

DEFAULT_IGNORE_TAGS = frozenset({"latest"})


@dataclass(frozen=True)
class ParsedVersion:
    """Structured form of an image tag."""

    has_prefix_v: bool
    numeric: Tuple[int, ...]
    suffix: str

    @classmethod
    def parse(cls, tag: str) -> "ParsedVersion":
        """Split a tag into prefix flag, numeric components and suffix.

        Never raises: segments that are not integers are dropped, which
        changes the arity and so blocks comparison later on.
        """
        has_prefix_v = tag.startswith("v")
        core = tag
        suffix = ""
        if "-" in tag:
            core, _, suffix = tag.rpartition("-")
        if has_prefix_v:
            core = core[1:]

        numeric = []
        for segment in core.split("."):
            # plain ASCII digits only, int() would also take "7_1" or "+7"
            if segment.isascii() and segment.isdigit():
                numeric.append(int(segment))
        return cls(has_prefix_v=has_prefix_v, numeric=tuple(numeric), suffix=suffix)

    def comparable_with(self, other: "ParsedVersion") -> bool:
        return (
            self.has_prefix_v == other.has_prefix_v
            and self.suffix == other.suffix
            and len(self.numeric) == len(other.numeric)
        )

    def is_newer_than(self, other: "ParsedVersion") -> bool:
        """True if comparable with ``other`` and strictly greater."""
        if not self.comparable_with(other):
            return False
        for mine, theirs in zip(self.numeric, other.numeric):
            if mine != theirs:
                return mine > theirs
        return False


def is_upgrade(
    current: str,
    candidate: str,
    ignore_tags: Collection[str] = DEFAULT_IGNORE_TAGS,
    ignored_candidates: Collection[str] = (),
) -> bool:
    """Return True if ``candidate`` is a strict upgrade over ``current``.

    Args:
        current: Tag currently deployed.
        candidate: Tag offered by the registry.
        ignore_tags: Tags that are never upgrades (e.g. "latest").
        ignored_candidates: Image-specific tags to skip.
    """
    if candidate in ignore_tags or candidate in ignored_candidates:
        return False
    return ParsedVersion.parse(candidate).is_newer_than(ParsedVersion.parse(current))


def upgrade_candidates(
    current: str,
    tags: Iterable[str],
    ignore_tags: Collection[str] = DEFAULT_IGNORE_TAGS,
    ignored_candidates: Collection[str] = (),
) -> List[str]:
    """Filter ``tags`` down to upgrades over ``current``, keeping registry order."""
    return [
        tag
        for tag in tags
        if is_upgrade(current, tag, ignore_tags, ignored_candidates)
    ]
