"""Client-side ordering of the user listing.

Column headers toggle the active sort: selecting the active column flips the
direction, selecting another column makes it active in ascending order.
Ordering is stable in both directions because descending order inverts the
comparator instead of reversing an ascending result.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from functools import cmp_to_key
from typing import Callable, Dict, Iterable, List, Optional, Union

from .models import UserRecord, parse_timestamp


class SortField(str, Enum):
    NAME = "name"
    EMAIL = "email"
    CREATED_AT = "created_at"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


class SortIndicator(str, Enum):
    """Marker a column header should display."""

    INACTIVE = "inactive"
    ASCENDING = "ascending"
    DESCENDING = "descending"


@dataclass(frozen=True)
class SortState:
    field: SortField = SortField.NAME
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self) -> None:
        object.__setattr__(self, "field", SortField(self.field))
        object.__setattr__(self, "direction", SortDirection(self.direction))

    def toggled(self, field: SortField) -> "SortState":
        """Return the state that results from selecting ``field``."""

        field = SortField(field)
        if field is self.field:
            return replace(self, direction=self.direction.flipped())
        return SortState(field=field, direction=SortDirection.ASC)


_SortKey = Union[str, datetime, None]


def _text_key(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.casefold()


def _instant_key(value: Union[datetime, str, None]) -> Optional[datetime]:
    return parse_timestamp(value)


_KEY_FUNCTIONS: Dict[SortField, Callable[[UserRecord], _SortKey]] = {
    SortField.NAME: lambda record: _text_key(record.name),
    SortField.EMAIL: lambda record: _text_key(record.email),
    SortField.CREATED_AT: lambda record: _instant_key(record.created_at),
}


def _compare_keys(left: _SortKey, right: _SortKey) -> int:
    # Missing values rank below every present value.
    if left is None and right is None:
        return 0
    if left is None:
        return -1
    if right is None:
        return 1
    if left < right:  # type: ignore[operator]
        return -1
    if left > right:  # type: ignore[operator]
        return 1
    return 0


def ordered_view(records: Iterable[UserRecord], state: SortState) -> List[UserRecord]:
    """Return a new list of ``records`` ordered according to ``state``."""

    key_for = _KEY_FUNCTIONS[state.field]
    sign = 1 if state.direction is SortDirection.ASC else -1

    def compare(left: UserRecord, right: UserRecord) -> int:
        return sign * _compare_keys(key_for(left), key_for(right))

    return sorted(records, key=cmp_to_key(compare))


def sort_indicator(state: SortState, field: SortField) -> SortIndicator:
    if SortField(field) is not state.field:
        return SortIndicator.INACTIVE
    if state.direction is SortDirection.ASC:
        return SortIndicator.ASCENDING
    return SortIndicator.DESCENDING


class SortController:
    """Holds the active :class:`SortState` for a listing view."""

    def __init__(self, state: SortState | None = None) -> None:
        self._state = state or SortState()

    @property
    def state(self) -> SortState:
        return self._state

    def set_sort_key(self, field: SortField) -> SortState:
        self._state = self._state.toggled(field)
        return self._state

    def indicator(self, field: SortField) -> SortIndicator:
        return sort_indicator(self._state, field)

    def ordered(self, records: Iterable[UserRecord]) -> List[UserRecord]:
        return ordered_view(records, self._state)


__all__ = [
    "SortController",
    "SortDirection",
    "SortField",
    "SortIndicator",
    "SortState",
    "ordered_view",
    "sort_indicator",
]
