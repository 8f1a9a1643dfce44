"""Demo data for local development."""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..logging_config import get_logger
from ..models import (
    Account,
    Budget,
    BudgetCategory,
    Category,
    RecurringRule,
    Tag,
    Transaction,
    TransactionTag,
    User,
    to_money,
)

logger = get_logger(__name__)

DEMO_EXTERNAL_ID = "demo_user"

SEED_ACCOUNTS = [
    ("Cash", "cash"),
    ("Bank", "bank"),
    ("Wallet", "wallet"),
    ("Credit Card", "credit"),
]

SEED_CATEGORIES = [
    ("Salary", "income", "#2e7d32"),
    ("Business", "income", "#66bb6a"),
    ("Food", "expense", "#ef6c00"),
    ("Transport", "expense", "#1565c0"),
    ("Bills", "expense", "#6a1b9a"),
    ("Entertainment", "expense", "#ad1457"),
    ("Shopping", "expense", "#00838f"),
]

SEED_TAGS = ["essentials", "recurring", "leisure"]

# (type, date, category, description, amount, tags)
SEED_TRANSACTIONS = [
    ("income", "2025-10-01", "Salary", "October Salary", "2500", ["recurring"]),
    ("expense", "2025-10-02", "Food", "Groceries", "42.75", ["essentials"]),
    ("expense", "2025-10-05", "Transport", "Bus pass", "15.00", ["essentials", "recurring"]),
    ("expense", "2025-10-12", "Bills", "Electricity bill", "68.20", ["essentials", "recurring"]),
    ("income", "2025-11-01", "Business", "Side project", "400", []),
    ("expense", "2025-11-01", "Entertainment", "Movie night", "12.00", ["leisure"]),
    ("expense", "2025-11-03", "Food", "Lunch out", "9.50", ["leisure"]),
    ("expense", "2025-11-10", "Shopping", "Clothes", "55.99", []),
]

RANDOM_DESCRIPTIONS = {
    "Food": ["Groceries", "Lunch out", "Coffee", "Bakery"],
    "Transport": ["Taxi", "Fuel", "Metro card"],
    "Bills": ["Phone bill", "Internet", "Water bill"],
    "Entertainment": ["Concert", "Streaming", "Books"],
    "Shopping": ["Shoes", "Household", "Gift"],
}


@dataclass
class SeedSummary:
    user_id: int
    accounts: int
    categories: int
    tags: int
    transactions: int
    budgets: int
    recurring_rules: int
    created: bool


def _count(session: Session, model, user_id: int) -> int:
    return session.scalar(select(func.count()).select_from(model).where(model.user_id == user_id)) or 0


def _build_summary(session: Session, user_id: int, created: bool) -> SeedSummary:
    return SeedSummary(
        user_id=user_id,
        accounts=_count(session, Account, user_id),
        categories=_count(session, Category, user_id),
        tags=_count(session, Tag, user_id),
        transactions=_count(session, Transaction, user_id),
        budgets=_count(session, Budget, user_id),
        recurring_rules=_count(session, RecurringRule, user_id),
        created=created,
    )


def _get_or_create_user(session: Session, external_id: str) -> User:
    user = session.scalars(select(User).where(User.external_id == external_id)).first()
    if user is None:
        user = User(external_id=external_id, email=f"{external_id}@example.local", name="Demo User")
        session.add(user)
        session.flush()
    return user


def _clear_user_data(session: Session, user_id: int) -> None:
    tx_ids = select(Transaction.id).where(Transaction.user_id == user_id)
    budget_ids = select(Budget.id).where(Budget.user_id == user_id)
    session.execute(delete(TransactionTag).where(TransactionTag.transaction_id.in_(tx_ids)))
    session.execute(delete(BudgetCategory).where(BudgetCategory.budget_id.in_(budget_ids)))
    for model in (Transaction, RecurringRule, Budget, Tag, Category, Account):
        session.execute(delete(model).where(model.user_id == user_id))
    session.flush()


def _random_transactions(
    rng: random.Random,
    user_id: int,
    accounts: list[Account],
    categories: dict[tuple[str, str], Category],
    count: int,
) -> list[Transaction]:
    names = sorted(RANDOM_DESCRIPTIONS)
    rows = []
    for _ in range(count):
        name = rng.choice(names)
        month = rng.choice([10, 11])
        rows.append(
            Transaction(
                type="expense",
                date=datetime(2025, month, rng.randint(1, 28), rng.randint(8, 21), rng.choice([0, 15, 30, 45])),
                category=name,
                description=rng.choice(RANDOM_DESCRIPTIONS[name]),
                amount=to_money(Decimal(rng.randint(100, 15000)) / 100),
                is_deleted=False,
                user_id=user_id,
                account_id=rng.choice(accounts).id,
                category_id=categories[(name, "expense")].id,
            )
        )
    return rows


def seed_database(
    session: Session,
    external_id: str = DEMO_EXTERNAL_ID,
    *,
    reset: bool = False,
    random_transactions: int = 20,
    rng: Optional[random.Random] = None,
) -> SeedSummary:
    """Populate one user with accounts, categories, tags, transactions, budgets and recurring rules.

    Re-running on an already seeded user does nothing unless ``reset`` is set,
    in which case that user's data is cleared and generated again.
    """
    rng = rng or random.Random(42)
    user = _get_or_create_user(session, external_id)

    already_seeded = _count(session, Transaction, user.id) > 0
    if already_seeded and not reset:
        logger.info("Seed skipped, user already has data", extra={"user_id": user.id})
        return _build_summary(session, user.id, created=False)
    if already_seeded:
        _clear_user_data(session, user.id)

    accounts = [
        Account(user_id=user.id, name=name, type=acc_type, currency="INR", initial_balance=Decimal("0.00"))
        for name, acc_type in SEED_ACCOUNTS
    ]
    accounts[1].initial_balance = Decimal("1500.00")
    session.add_all(accounts)

    categories = {
        (name, cat_type): Category(user_id=user.id, name=name, type=cat_type, color=color)
        for name, cat_type, color in SEED_CATEGORIES
    }
    session.add_all(categories.values())

    tags = {name: Tag(user_id=user.id, name=name) for name in SEED_TAGS}
    session.add_all(tags.values())
    session.flush()

    for tx_type, day, category, description, amount, tag_names in SEED_TRANSACTIONS:
        tx = Transaction(
            type=tx_type,
            date=datetime.fromisoformat(day),
            category=category,
            description=description,
            amount=to_money(amount),
            is_deleted=False,
            user_id=user.id,
            account_id=accounts[1].id if tx_type == "income" else accounts[0].id,
            category_id=categories[(category, tx_type)].id,
        )
        tx.tag_links = [TransactionTag(tag=tags[name]) for name in tag_names]
        session.add(tx)

    session.add_all(_random_transactions(rng, user.id, accounts, categories, random_transactions))

    expense_categories = [cat for (_, cat_type), cat in categories.items() if cat_type == "expense"]
    for month, amount in ((10, "1200.00"), (11, "1000.00")):
        budget = Budget(user_id=user.id, name=f"2025-{month:02d} budget", year=2025, month=month, amount=to_money(amount))
        budget.category_links = [BudgetCategory(category=cat) for cat in expense_categories]
        session.add(budget)

    session.add_all(
        [
            RecurringRule(
                user_id=user.id,
                account_id=accounts[1].id,
                category_id=categories[("Salary", "income")].id,
                type="income",
                amount=to_money("2500"),
                description="Monthly salary",
                frequency="monthly",
                interval=1,
                day_of_month=1,
                start_date=date(2025, 10, 1),
            ),
            RecurringRule(
                user_id=user.id,
                account_id=accounts[0].id,
                category_id=categories[("Bills", "expense")].id,
                type="expense",
                amount=to_money("68.20"),
                description="Electricity bill",
                frequency="monthly",
                interval=1,
                day_of_month=12,
                start_date=date(2025, 10, 12),
                end_date=date(2026, 9, 12),
            ),
        ]
    )
    session.flush()

    summary = _build_summary(session, user.id, created=True)
    logger.info("Seed complete", extra={"user_id": user.id, "transactions": summary.transactions})
    return summary
