"""Helpers for direct app-assignment lists."""

from __future__ import annotations

from typing import List, Sequence, Tuple


def toggle_item(items: Sequence[int], item: int, append: bool = True) -> Tuple[bool, List[int]]:
    """Add or remove ``item``; returns ``(changed, new_items)``."""

    current = list(items or [])
    present = item in current
    if append and not present:
        return True, current + [item]
    if not append and present:
        return True, [value for value in current if value != item]
    return False, current
