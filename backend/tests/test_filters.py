from datetime import datetime

import pytest
from fastapi import HTTPException

from expense_api.auth import CurrentUser
from expense_api.services.filters import (
    InvalidFilterError,
    TransactionFilter,
    build_transaction_filter,
    month_range,
    parse_id,
)


def test_month_range_is_half_open() -> None:
    rng = month_range("2025-10")
    assert rng.start == datetime(2025, 10, 1)
    assert rng.end == datetime(2025, 11, 1)


def test_month_range_rolls_over_december() -> None:
    rng = month_range("2025-12")
    assert rng.end == datetime(2026, 1, 1)
    assert month_range("2025-3").start == datetime(2025, 3, 1)


@pytest.mark.parametrize("value", [None, "", "2025", "2025-00", "2025-13", "25-10", "2025-10-01", "october"])
def test_month_range_ignores_unparseable_values(value) -> None:
    assert month_range(value) is None


def test_parse_id() -> None:
    assert parse_id("accountId", None) is None
    assert parse_id("accountId", "") is None
    assert parse_id("accountId", " 7 ") == 7


@pytest.mark.parametrize("value", ["abc", "0", "-3", "1.5"])
def test_parse_id_rejects_non_positive_integers(value) -> None:
    with pytest.raises(InvalidFilterError) as excinfo:
        parse_id("categoryId", value)
    assert excinfo.value.field == "categoryId"


def test_build_filter_scopes_to_caller() -> None:
    caller = CurrentUser(id=5, external_id="user_5")
    filters = build_transaction_filter(caller, type="expense", month="2025-10", account_id="3")
    assert filters.user_id == 5
    assert filters.type == "expense"
    assert filters.account_id == 3
    assert filters.date_range.start == datetime(2025, 10, 1)


def test_build_filter_drops_unknown_type() -> None:
    caller = CurrentUser(id=5, external_id="user_5")
    assert build_transaction_filter(caller, type="transfer").type is None


def test_build_filter_user_override() -> None:
    with pytest.raises(HTTPException) as excinfo:
        build_transaction_filter(CurrentUser(id=5, external_id="user_5"), user_id="6")
    assert excinfo.value.status_code == 403

    admin = CurrentUser(id=1, external_id="root", is_admin=True)
    assert build_transaction_filter(admin, user_id="6").user_id == 6


def test_clauses_always_exclude_deleted_rows() -> None:
    clauses = [str(clause) for clause in TransactionFilter().clauses()]
    assert len(clauses) == 1
    assert "is_deleted" in clauses[0]

    typed = TransactionFilter(user_id=1, type="income")
    assert len(typed.clauses()) == 3
    assert len(typed.without_type().clauses()) == 2


def test_month_range_last_representable_month_is_open_ended() -> None:
    rng = month_range("9999-12")
    assert rng.start == datetime(9999, 12, 1)
    assert rng.end is None
    clauses = TransactionFilter(date_range=rng).clauses()
    assert len(clauses) == 2
