"""Label-based filtering of pull requests and issues."""

from typing import Any


def label_names(labels: list[Any] | None) -> list[str]:
    """Extract label names from a labels array (entries may be strings or objects)."""
    names = []
    for label in labels or []:
        name = label if isinstance(label, str) else (label or {}).get("name")
        if name:
            names.append(name)
    return names


def passes_label_filters(
    labels: list[str],
    include: list[str],
    exclude: list[str],
) -> bool:
    """Check whether an entity's labels pass the include and exclude filters.

    The include filter (when non-empty) requires at least one matching label;
    the exclude filter (when non-empty) rejects any matching label. Matching
    is exact.

    Args:
        labels: Label names on the entity
        include: Configured include labels
        exclude: Configured exclude labels

    Returns:
        True if the entity should be synced

    Example:
        >>> passes_label_filters(['bug'], ['bug', 'docs'], [])
        True
        >>> passes_label_filters(['bug', 'wontfix'], [], ['wontfix'])
        False
        >>> passes_label_filters([], ['bug'], [])
        False
    """
    label_set = set(labels)
    if include and not label_set.intersection(include):
        return False
    if exclude and label_set.intersection(exclude):
        return False
    return True
