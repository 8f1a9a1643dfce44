"""Query-parameter filters for transaction reads.

``TransactionFilter.clauses`` is the only place read queries get their WHERE
clause, so the soft-delete predicate cannot be forgotten by a new endpoint.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import MAXYEAR, datetime
from typing import Any, Optional

from ..auth import CurrentUser
from ..models import TRANSACTION_TYPES, Transaction

_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")
_ID_RE = re.compile(r"^\d+$")


class InvalidFilterError(ValueError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: Optional[datetime] = None


@dataclass(frozen=True)
class TransactionFilter:
    user_id: Optional[int] = None
    type: Optional[str] = None
    category: Optional[str] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    date_range: Optional[DateRange] = None

    def without_type(self) -> "TransactionFilter":
        return replace(self, type=None)

    def clauses(self) -> list[Any]:
        where: list[Any] = [Transaction.is_deleted.is_(False)]
        if self.user_id is not None:
            where.append(Transaction.user_id == self.user_id)
        if self.type is not None:
            where.append(Transaction.type == self.type)
        if self.category is not None:
            where.append(Transaction.category == self.category)
        if self.category_id is not None:
            where.append(Transaction.category_id == self.category_id)
        if self.account_id is not None:
            where.append(Transaction.account_id == self.account_id)
        if self.date_range is not None:
            where.append(Transaction.date >= self.date_range.start)
            if self.date_range.end is not None:
                where.append(Transaction.date < self.date_range.end)
        return where


def month_range(value: Optional[str]) -> Optional[DateRange]:
    """Parse ``YYYY-MM`` into [first of month, first of next month) in UTC.

    Anything that does not parse returns ``None`` (no date filter). December
    of the last representable year has no next month, so its range is open-ended.
    """
    match = _MONTH_RE.match((value or "").strip())
    if match is None:
        return None
    year, month = int(match.group(1)), int(match.group(2))
    if year < 1 or not 1 <= month <= 12:
        return None
    start = datetime(year, month, 1)
    if month < 12:
        end = datetime(year, month + 1, 1)
    elif year < MAXYEAR:
        end = datetime(year + 1, 1, 1)
    else:
        end = None
    return DateRange(start=start, end=end)


def parse_id(field: str, value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    raw = value.strip()
    if not _ID_RE.match(raw) or int(raw) < 1:
        raise InvalidFilterError(field, f"{field} must be a positive integer")
    return int(raw)


def build_transaction_filter(
    caller: CurrentUser,
    *,
    type: Optional[str] = None,
    category: Optional[str] = None,
    category_id: Optional[str] = None,
    account_id: Optional[str] = None,
    user_id: Optional[str] = None,
    month: Optional[str] = None,
) -> TransactionFilter:
    return TransactionFilter(
        user_id=caller.resolve_user_id(parse_id("userId", user_id)),
        type=type if type in TRANSACTION_TYPES else None,
        category=category or None,
        category_id=parse_id("categoryId", category_id),
        account_id=parse_id("accountId", account_id),
        date_range=month_range(month),
    )
