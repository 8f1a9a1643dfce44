import random

from expense_api import main
from expense_api.models import Account, Category, Transaction
from expense_api.services.seed import seed_database


def test_create_transaction_with_default_account_and_category(client, alice, count_rows) -> None:
    res = client.post(
        "/api/transactions",
        json={
            "type": "expense",
            "date": "2025-10-02",
            "category": "Food",
            "description": "Groceries",
            "amount": "42.75",
        },
        headers=alice,
    )
    assert res.status_code == 201
    body = res.json()
    assert body["type"] == "expense"
    assert body["date"] == "2025-10-02T00:00:00Z"
    assert body["amount"] == "42.75"
    assert body["isDeleted"] is False
    assert body["description"] == "Groceries"
    assert body["account"]["name"] == "Cash"
    assert body["account"]["type"] == "cash"
    assert body["account"]["currency"] == "INR"
    assert body["account"]["initialBalance"] == "0.00"
    assert body["categoryRef"]["name"] == "Food"
    assert body["categoryRef"]["type"] == "expense"
    assert body["categoryRef"]["color"] == "#999999"
    assert body["accountId"] == body["account"]["id"]
    assert body["categoryId"] == body["categoryRef"]["id"]
    assert body["tags"] == []
    assert count_rows(Account) == 1
    assert count_rows(Category) == 1


def test_numeric_amount_is_rounded_half_up(client, alice, create_tx) -> None:
    assert create_tx(alice, amount=12.5)["amount"] == "12.50"
    assert create_tx(alice, amount=10.005)["amount"] == "10.01"
    assert create_tx(alice, amount="0")["amount"] == "0.00"


def test_account_and_category_are_reused(client, alice, create_tx, count_rows) -> None:
    first = create_tx(alice)
    second = create_tx(alice, amount="3.10")
    assert first["accountId"] == second["accountId"]
    assert first["categoryId"] == second["categoryId"]

    income = create_tx(alice, type="income", category="Food")
    assert income["categoryId"] != first["categoryId"]
    assert income["accountId"] == first["accountId"]
    assert count_rows(Account) == 1
    assert count_rows(Category) == 2


def test_explicit_category_id_without_name(client, alice, create_tx) -> None:
    first = create_tx(alice)
    res = client.post(
        "/api/transactions",
        json={"type": "expense", "date": "2025-10-03", "categoryId": first["categoryId"], "amount": "1"},
        headers=alice,
    )
    assert res.status_code == 201
    assert res.json()["category"] is None
    assert res.json()["categoryRef"]["name"] == "Food"


def test_foreign_account_or_category_is_rejected(client, alice, bob, create_tx, count_rows) -> None:
    alice_tx = create_tx(alice)
    base = {"type": "expense", "date": "2025-10-02", "category": "Food", "amount": "1"}

    res = client.post("/api/transactions", json={**base, "accountId": alice_tx["accountId"]}, headers=bob)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"

    res = client.post("/api/transactions", json={**base, "categoryId": alice_tx["categoryId"]}, headers=bob)
    assert res.status_code == 400

    res = client.post("/api/transactions", json={**base, "accountId": 999999}, headers=alice)
    assert res.status_code == 400
    assert count_rows(Transaction) == 1


def test_list_filters_by_month_and_type_newest_first(client, alice, create_tx) -> None:
    oct_2 = create_tx(alice, date="2025-10-02")
    oct_15 = create_tx(alice, date="2025-10-15T09:30:00Z")
    create_tx(alice, date="2025-11-01")
    create_tx(alice, date="2025-09-30T23:59:59Z")
    create_tx(alice, type="income", category="Salary", date="2025-10-01", amount="2500")

    res = client.get("/api/transactions", params={"month": "2025-10", "type": "expense"}, headers=alice)
    assert res.status_code == 200
    assert [row["id"] for row in res.json()] == [oct_15["id"], oct_2["id"]]

    everything = client.get("/api/transactions", headers=alice).json()
    dates = [row["date"] for row in everything]
    assert dates == sorted(dates, reverse=True)
    assert len(everything) == 5


def test_unparseable_month_and_type_are_ignored(client, alice, create_tx) -> None:
    create_tx(alice, date="2025-10-02")
    create_tx(alice, type="income", category="Salary", date="2025-11-01")
    for params in ({"month": "october"}, {"month": "2025-13"}, {"type": "transfer"}):
        res = client.get("/api/transactions", params=params, headers=alice)
        assert res.status_code == 200
        assert len(res.json()) == 2


def test_list_filters_by_category_and_ids(client, alice, create_tx) -> None:
    food = create_tx(alice, category="Food")
    create_tx(alice, category="Transport")

    by_name = client.get("/api/transactions", params={"category": "Food"}, headers=alice).json()
    assert [row["id"] for row in by_name] == [food["id"]]

    by_id = client.get("/api/transactions", params={"categoryId": food["categoryId"]}, headers=alice).json()
    assert [row["id"] for row in by_id] == [food["id"]]

    by_account = client.get("/api/transactions", params={"accountId": food["accountId"]}, headers=alice).json()
    assert len(by_account) == 2


def test_users_only_see_their_own_transactions(client, alice, bob, create_tx) -> None:
    create_tx(alice)
    bob_tx = create_tx(bob)
    listed = client.get("/api/transactions", headers=bob).json()
    assert [row["id"] for row in listed] == [bob_tx["id"]]


def test_list_includes_seeded_tags_sorted_by_name(client, alice) -> None:
    with main.persistence.session_scope() as session:
        seed_database(session, "user_alice", random_transactions=0, rng=random.Random(1))

    res = client.get("/api/transactions", params={"month": "2025-10", "category": "Transport"}, headers=alice)
    rows = res.json()
    assert len(rows) == 1
    assert [tag["name"] for tag in rows[0]["tags"]] == ["essentials", "recurring"]
    assert rows[0]["account"]["name"] == "Cash"


def test_update_changes_only_supplied_fields(client, alice, create_tx) -> None:
    tx = create_tx(alice, description="Groceries", amount="10.00")

    res = client.put(f"/api/transactions/{tx['id']}", json={"amount": "20.5"}, headers=alice)
    assert res.status_code == 200
    body = res.json()
    assert body["amount"] == "20.50"
    assert body["description"] == "Groceries"
    assert body["category"] == "Food"
    assert body["date"] == tx["date"]

    res = client.put(f"/api/transactions/{tx['id']}", json={"amount": 7}, headers=alice)
    assert res.json()["amount"] == "7.00"

    res = client.put(f"/api/transactions/{tx['id']}", json={"description": None}, headers=alice)
    assert res.status_code == 200
    assert res.json()["description"] is None
    assert res.json()["amount"] == "7.00"


def test_update_type_and_date(client, alice, create_tx) -> None:
    tx = create_tx(alice)
    res = client.put(
        f"/api/transactions/{tx['id']}",
        json={"type": "income", "date": "2025-12-24T18:00:00+02:00"},
        headers=alice,
    )
    assert res.status_code == 200
    assert res.json()["type"] == "income"
    assert res.json()["date"] == "2025-12-24T16:00:00Z"


def test_update_can_clear_category_link(client, alice, create_tx) -> None:
    tx = create_tx(alice)
    res = client.put(f"/api/transactions/{tx['id']}", json={"categoryId": None}, headers=alice)
    assert res.status_code == 200
    assert res.json()["categoryId"] is None
    assert res.json()["categoryRef"] is None


def test_update_missing_or_foreign_transaction_returns_404(client, alice, bob, admin, create_tx) -> None:
    res = client.put("/api/transactions/999999", json={"description": "x"}, headers=alice)
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "NOT_FOUND"

    tx = create_tx(alice)
    assert client.put(f"/api/transactions/{tx['id']}", json={"description": "x"}, headers=bob).status_code == 404

    res = client.put(f"/api/transactions/{tx['id']}", json={"description": "checked"}, headers=admin)
    assert res.status_code == 200
    assert res.json()["description"] == "checked"
    assert res.json()["userId"] == tx["userId"]


def test_delete_is_soft_and_idempotent(client, alice, create_tx, count_rows) -> None:
    tx = create_tx(alice)
    res = client.delete(f"/api/transactions/{tx['id']}", headers=alice)
    assert res.status_code == 204
    assert res.content == b""

    assert client.get("/api/transactions", headers=alice).json() == []
    assert count_rows(Transaction) == 1

    assert client.delete(f"/api/transactions/{tx['id']}", headers=alice).status_code == 204


def test_delete_missing_or_foreign_transaction_returns_404(client, alice, bob, create_tx) -> None:
    assert client.delete("/api/transactions/999999", headers=alice).status_code == 404
    tx = create_tx(alice)
    assert client.delete(f"/api/transactions/{tx['id']}", headers=bob).status_code == 404
    assert len(client.get("/api/transactions", headers=alice).json()) == 1


def test_deleted_transaction_can_be_restored(client, alice, create_tx) -> None:
    tx = create_tx(alice)
    client.delete(f"/api/transactions/{tx['id']}", headers=alice)

    res = client.put(f"/api/transactions/{tx['id']}", json={"isDeleted": False}, headers=alice)
    assert res.status_code == 200
    assert res.json()["isDeleted"] is False
    assert [row["id"] for row in client.get("/api/transactions", headers=alice).json()] == [tx["id"]]


def test_soft_delete_keeps_tag_links(client, alice) -> None:
    with main.persistence.session_scope() as session:
        seed_database(session, "user_alice", random_transactions=0)

    rows = client.get("/api/transactions", params={"category": "Bills"}, headers=alice).json()
    tx_id = rows[0]["id"]
    client.delete(f"/api/transactions/{tx_id}", headers=alice)
    restored = client.put(f"/api/transactions/{tx_id}", json={"isDeleted": False}, headers=alice).json()
    assert [tag["name"] for tag in restored["tags"]] == ["essentials", "recurring"]


def test_same_date_rows_list_newest_id_first(client, alice, create_tx) -> None:
    ids = [create_tx(alice, date="2025-10-02")["id"] for _ in range(3)]
    listed = client.get("/api/transactions", params={"month": "2025-10"}, headers=alice).json()
    assert [row["id"] for row in listed] == list(reversed(ids))


def test_last_representable_month_filter_is_accepted(client, alice, create_tx) -> None:
    create_tx(alice, date="2025-10-02")
    december = create_tx(alice, date="9999-12-31T23:00:00Z")
    res = client.get("/api/transactions", params={"month": "9999-12"}, headers=alice)
    assert res.status_code == 200
    assert [row["id"] for row in res.json()] == [december["id"]]
