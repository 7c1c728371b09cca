# ============================================================================
# TAG FILTERS
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Probe selection
# PURPOSE: Parse and match positive/negative tag filters
# CREATED: 19 OCT 2026
# ============================================================================
"""
Tag Filters

A filter is a set of positive and negative terms:

    "a,b"     carries a AND b
    "a,-b"    carries a, does not carry b
    "-b"      does not carry b
    ""        every probe

With ``any_positive`` (the executor's combine-tags-with-or option) a probe
needs only one of the positive terms; negative terms always exclude.
"""

from dataclasses import dataclass
from typing import AbstractSet, FrozenSet, Iterable, Union

from health.errors import TagFilterError

TagFilterInput = Union[str, Iterable[str], "TagFilter", None]


@dataclass(frozen=True)
class TagFilter:
    """Parsed tag filter."""
    include: FrozenSet[str] = frozenset()
    exclude: FrozenSet[str] = frozenset()
    any_positive: bool = False

    @classmethod
    def parse(cls, terms: TagFilterInput, any_positive: bool = False) -> "TagFilter":
        """
        Parse a filter from a comma-separated string or an iterable of terms.

        Raises:
            TagFilterError: On a bare '-' or a term containing whitespace
        """
        if isinstance(terms, TagFilter):
            if any_positive and not terms.any_positive:
                return cls(terms.include, terms.exclude, True)
            return terms
        if terms is None:
            return cls(any_positive=any_positive)
        if isinstance(terms, str):
            raw = terms.split(",")
        else:
            raw = []
            for term in terms:
                if not isinstance(term, str):
                    raise TagFilterError(f"Tag filter terms must be strings, got {term!r}")
                raw.extend(term.split(","))

        include = set()
        exclude = set()
        for term in raw:
            term = term.strip()
            if not term:
                continue
            if any(c.isspace() for c in term):
                raise TagFilterError(f"Invalid tag filter term {term!r}")
            if term.startswith("-"):
                tag = term[1:]
                if not tag or tag.startswith("-"):
                    raise TagFilterError(f"Invalid negative tag filter term {term!r}")
                exclude.add(tag)
            else:
                include.add(term)

        return cls(frozenset(include), frozenset(exclude), any_positive)

    @property
    def is_empty(self) -> bool:
        return not self.include and not self.exclude

    def matches(self, tags: AbstractSet[str]) -> bool:
        if self.exclude & tags:
            return False
        if not self.include:
            return True
        if self.any_positive:
            return bool(self.include & tags)
        return self.include <= tags

    def __str__(self) -> str:
        terms = sorted(self.include) + [f"-{t}" for t in sorted(self.exclude)]
        return ",".join(terms)


__all__ = [
    "TagFilter",
    "TagFilterInput",
]
