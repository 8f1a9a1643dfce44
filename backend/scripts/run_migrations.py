from __future__ import annotations

from pathlib import Path

import click
from sqlalchemy import create_engine, text

from expense_api.config import settings

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "db" / "migrations"


def split_sql_statements(sql: str) -> list[str]:
    statements = []
    current: list[str] = []
    in_dollar = False
    for line in sql.splitlines(keepends=True):
        stripped = line.strip()
        if "$$" in line:
            in_dollar = not in_dollar
        current.append(line)
        if not in_dollar and stripped.endswith(";"):
            statements.append("".join(current).strip())
            current = []
    tail = "".join(current).strip()
    if tail:
        statements.append(tail)
    return [s for s in statements if s and not s.startswith("--")]


def pending_migrations(migrations_dir: Path, applied: set[str]) -> list[Path]:
    return [path for path in sorted(migrations_dir.glob("*.sql")) if path.name not in applied]


@click.command()
@click.option("--database-url", default=settings.database_url, show_default=True)
@click.option("--migrations-dir", default=str(MIGRATIONS_DIR), show_default=True, type=click.Path(file_okay=False))
@click.option("--dry-run", is_flag=True, default=False, help="List pending migrations without applying them.")
def main(database_url: str, migrations_dir: str, dry_run: bool) -> None:
    """Apply pending SQL migrations to a Postgres database."""
    engine = create_engine(database_url, future=True, pool_pre_ping=True)
    migration_files = sorted(Path(migrations_dir).glob("*.sql"))
    if not migration_files:
        click.echo("No migration files found.")
        return

    with engine.begin() as conn:
        conn.execute(
            text(
                """
                create table if not exists schema_migrations (
                  filename text primary key,
                  applied_at timestamptz not null default now()
                )
                """
            )
        )
        applied = {row[0] for row in conn.execute(text("select filename from schema_migrations")).fetchall()}

        for file in pending_migrations(Path(migrations_dir), applied):
            if dry_run:
                click.echo(f"Pending: {file.name}")
                continue
            for stmt in split_sql_statements(file.read_text(encoding="utf-8")):
                conn.execute(text(stmt))
            conn.execute(
                text("insert into schema_migrations (filename) values (:filename)"),
                {"filename": file.name},
            )
            click.echo(f"Applied: {file.name}")

    click.echo("Migration run finished.")


if __name__ == "__main__":
    main()
