from __future__ import annotations

import random

import click

from expense_api.config import settings
from expense_api.logging_config import setup_logging
from expense_api.persistence import SqlPersistence
from expense_api.services.seed import DEMO_EXTERNAL_ID, seed_database


@click.command()
@click.option("--database-url", default=settings.database_url, show_default=True, help="Target database.")
@click.option("--external-id", default=DEMO_EXTERNAL_ID, show_default=True, help="External auth id of the demo user.")
@click.option("--reset", is_flag=True, default=False, help="Clear the user's existing data first.")
@click.option("--random-transactions", default=20, show_default=True, type=click.IntRange(min=0))
@click.option("--random-seed", default=42, show_default=True, type=int)
def main(database_url: str, external_id: str, reset: bool, random_transactions: int, random_seed: int) -> None:
    """Seed the database with demo accounts, categories, tags, transactions, budgets and recurring rules."""
    setup_logging(settings)
    persistence = SqlPersistence(database_url, settings.default_currency)
    persistence.init_schema()
    with persistence.session_scope() as session:
        summary = seed_database(
            session,
            external_id,
            reset=reset,
            random_transactions=random_transactions,
            rng=random.Random(random_seed),
        )
    if not summary.created:
        click.echo(f"User {summary.user_id} already seeded; use --reset to regenerate.")
    click.echo(
        f"Seed complete: user={summary.user_id} accounts={summary.accounts} categories={summary.categories} "
        f"tags={summary.tags} transactions={summary.transactions} budgets={summary.budgets} "
        f"recurring_rules={summary.recurring_rules}"
    )


if __name__ == "__main__":
    main()
