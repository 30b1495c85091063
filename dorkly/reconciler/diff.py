"""Key-set comparison shared by the environment and flag reconciliation passes."""

from typing import Any, List, Mapping, NamedTuple, Optional


class KeyComparison(NamedTuple):
    """Keys of two mappings split into disjoint groups."""

    new: List[str]          # only in the second mapping
    existing: List[str]     # in both
    deleted: List[str]      # only in the first mapping


def compare_keys(
    old: Optional[Mapping[str, Any]],
    new: Optional[Mapping[str, Any]],
) -> KeyComparison:
    """Classify every key of `old` and `new` as new, existing or deleted."""
    old = old or {}
    new = new or {}

    existing = [key for key in old if key in new]
    deleted = [key for key in old if key not in new]
    added = [key for key in new if key not in old]
    return KeyComparison(new=added, existing=existing, deleted=deleted)
