from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Callable, Iterator, Optional, TypeVar

from fastapi import HTTPException
from sqlalchemy import create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker
from sqlalchemy.pool import StaticPool

from .auth import ExternalProfile, placeholder_email
from .config import settings
from .logging_config import get_logger
from .models import (
    TRANSACTION_TYPES,
    Account,
    Base,
    Category,
    Transaction,
    TransactionTag,
    User,
)
from .schemas import TransactionCreate, TransactionUpdate
from .services.filters import TransactionFilter

logger = get_logger(__name__)

T = TypeVar("T")

_IN_MEMORY_SQLITE = {"sqlite://", "sqlite:///:memory:"}


def create_db_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, future=True, pool_pre_ping=True)

    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if database_url in _IN_MEMORY_SQLITE:
        options["poolclass"] = StaticPool
    engine = create_engine(database_url, future=True, **options)

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN.
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")

    return engine


def insert_or_refetch(session: Session, entity: T, refetch: Callable[[], Optional[T]]) -> T:
    """Insert ``entity``; if a unique constraint says it already exists, return the stored row.

    Covers the find-or-create race: two requests can both miss the lookup, the
    database lets only one insert through and the loser re-reads.
    """
    try:
        with session.begin_nested():
            session.add(entity)
    except IntegrityError:
        existing = refetch()
        if existing is None:
            raise
        logger.info("Concurrent insert detected, using existing %s", type(entity).__name__)
        return existing
    return entity


def _user_row(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "external_id": user.external_id,
        "email": user.email,
        "name": user.name,
    }


def _account_row(account: Optional[Account]) -> Optional[dict[str, Any]]:
    if account is None:
        return None
    return {
        "id": account.id,
        "name": account.name,
        "type": account.type,
        "currency": account.currency,
        "initial_balance": account.initial_balance,
    }


def _category_row(category: Optional[Category]) -> Optional[dict[str, Any]]:
    if category is None:
        return None
    return {"id": category.id, "name": category.name, "type": category.type, "color": category.color}


def _transaction_row(tx: Transaction) -> dict[str, Any]:
    return {
        "id": tx.id,
        "type": tx.type,
        "date": tx.date,
        "category": tx.category,
        "description": tx.description,
        "amount": tx.amount,
        "is_deleted": tx.is_deleted,
        "user_id": tx.user_id,
        "account_id": tx.account_id,
        "category_id": tx.category_id,
        "created_at": tx.created_at,
        "updated_at": tx.updated_at,
        "account": _account_row(tx.account),
        "category_ref": _category_row(tx.category_ref),
        "tags": sorted(
            ({"id": link.tag.id, "name": link.tag.name} for link in tx.tag_links),
            key=lambda tag: tag["name"],
        ),
    }


class Persistence:
    def init_schema(self) -> None:
        raise NotImplementedError

    def drop_schema(self) -> None:
        raise NotImplementedError

    def ensure_local_user(self, external_id: str, profile_lookup: Callable[[], ExternalProfile]) -> dict[str, Any]:
        raise NotImplementedError

    def list_transactions(self, filters: TransactionFilter) -> list[dict[str, Any]]:
        raise NotImplementedError

    def create_transaction(self, owner_id: int, payload: TransactionCreate) -> dict[str, Any]:
        raise NotImplementedError

    def update_transaction(
        self,
        owner_scope: Optional[int],
        transaction_id: int,
        payload: TransactionUpdate,
        resolve_user_id: Callable[[Optional[int]], int],
    ) -> dict[str, Any]:
        raise NotImplementedError

    def soft_delete_transaction(self, owner_scope: Optional[int], transaction_id: int) -> None:
        raise NotImplementedError

    def summarize(self, filters: TransactionFilter) -> dict[str, tuple[Decimal, int]]:
        raise NotImplementedError


class SqlPersistence(Persistence):
    def __init__(self, database_url: str, default_currency: str = "INR") -> None:
        self.engine: Engine = create_db_engine(database_url)
        self.default_currency = default_currency
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Database error")
            raise HTTPException(status_code=500, detail=f"database error: {exc.__class__.__name__}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def drop_schema(self) -> None:
        Base.metadata.drop_all(self.engine)

    @staticmethod
    def _user_by_external_id(session: Session, external_id: str) -> Optional[User]:
        return session.scalars(select(User).where(User.external_id == external_id)).first()

    def ensure_local_user(self, external_id: str, profile_lookup: Callable[[], ExternalProfile]) -> dict[str, Any]:
        with self.session_scope() as session:
            user = self._user_by_external_id(session, external_id)
            if user is not None:
                return _user_row(user)
            try:
                profile = profile_lookup()
            except Exception:
                logger.warning("Profile lookup failed for %s, creating minimal user", external_id, exc_info=True)
                profile = ExternalProfile()
            user = insert_or_refetch(
                session,
                User(
                    external_id=external_id,
                    email=profile.email or placeholder_email(external_id),
                    name=profile.name,
                ),
                lambda: self._user_by_external_id(session, external_id),
            )
            session.flush()
            logger.info("Local user ready", extra={"user_id": user.id, "external_id": external_id})
            return _user_row(user)

    def list_transactions(self, filters: TransactionFilter) -> list[dict[str, Any]]:
        stmt = (
            select(Transaction)
            .where(*filters.clauses())
            .options(
                selectinload(Transaction.tag_links).selectinload(TransactionTag.tag),
                selectinload(Transaction.account),
                selectinload(Transaction.category_ref),
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        with self.session_scope() as session:
            return [_transaction_row(tx) for tx in session.scalars(stmt)]

    @staticmethod
    def _first_account(session: Session, user_id: int) -> Optional[Account]:
        return session.scalars(
            select(Account).where(Account.user_id == user_id).order_by(Account.id.asc()).limit(1)
        ).first()

    def _resolve_account_id(self, session: Session, owner_id: int, account_id: Optional[int]) -> int:
        if account_id is not None:
            account = session.get(Account, account_id)
            if account is None or account.user_id != owner_id:
                raise HTTPException(status_code=400, detail=f"unknown accountId: {account_id}")
            return account.id
        account = self._first_account(session, owner_id)
        if account is None:
            account = insert_or_refetch(
                session,
                Account(
                    user_id=owner_id,
                    name="Cash",
                    type="cash",
                    currency=self.default_currency,
                    initial_balance=Decimal("0.00"),
                ),
                lambda: self._first_account(session, owner_id),
            )
            session.flush()
            logger.info("Created default account", extra={"user_id": owner_id, "account_id": account.id})
        return account.id

    @staticmethod
    def _check_category(session: Session, owner_id: int, category_id: int) -> int:
        category = session.get(Category, category_id)
        if category is None or category.user_id != owner_id:
            raise HTTPException(status_code=400, detail=f"unknown categoryId: {category_id}")
        return category.id

    def _resolve_category_id(self, session: Session, owner_id: int, payload: TransactionCreate) -> Optional[int]:
        if payload.categoryId is not None:
            return self._check_category(session, owner_id, payload.categoryId)
        if not payload.category:
            return None

        def find() -> Optional[Category]:
            return session.scalars(
                select(Category).where(
                    Category.user_id == owner_id,
                    Category.name == payload.category,
                    Category.type == payload.type,
                )
            ).first()

        category = find()
        if category is None:
            category = insert_or_refetch(
                session,
                Category(user_id=owner_id, name=payload.category, type=payload.type, color="#999999"),
                find,
            )
            session.flush()
            logger.info("Created category", extra={"user_id": owner_id, "category_id": category.id})
        return category.id

    def create_transaction(self, owner_id: int, payload: TransactionCreate) -> dict[str, Any]:
        with self.session_scope() as session:
            if session.get(User, owner_id) is None:
                raise HTTPException(status_code=401, detail="Unauthorized")
            tx = Transaction(
                type=payload.type,
                date=payload.date,
                category=payload.category,
                description=payload.description,
                amount=payload.amount,
                is_deleted=False,
                user_id=owner_id,
                account_id=self._resolve_account_id(session, owner_id, payload.accountId),
                category_id=self._resolve_category_id(session, owner_id, payload),
            )
            session.add(tx)
            session.flush()
            session.refresh(tx)
            return _transaction_row(tx)

    @staticmethod
    def _scoped_transaction(session: Session, owner_scope: Optional[int], transaction_id: int) -> Transaction:
        tx = session.get(Transaction, transaction_id)
        if tx is None or (owner_scope is not None and tx.user_id != owner_scope):
            raise HTTPException(status_code=404, detail="Transaction not found")
        return tx

    def update_transaction(
        self,
        owner_scope: Optional[int],
        transaction_id: int,
        payload: TransactionUpdate,
        resolve_user_id: Callable[[Optional[int]], int],
    ) -> dict[str, Any]:
        updates = payload.changes()
        with self.session_scope() as session:
            tx = self._scoped_transaction(session, owner_scope, transaction_id)
            if "userId" in updates:
                new_owner = resolve_user_id(updates["userId"])
                if session.get(User, new_owner) is None:
                    raise HTTPException(status_code=400, detail=f"unknown userId: {new_owner}")
                tx.user_id = new_owner
            if "type" in updates:
                tx.type = updates["type"]
            if "date" in updates:
                tx.date = updates["date"]
            if "category" in updates:
                tx.category = updates["category"]
            if "description" in updates:
                tx.description = updates["description"]
            if "amount" in updates:
                tx.amount = updates["amount"]
            if "accountId" in updates:
                account_id = updates["accountId"]
                tx.account_id = (
                    self._resolve_account_id(session, tx.user_id, account_id) if account_id is not None else None
                )
            if "categoryId" in updates:
                category_id = updates["categoryId"]
                tx.category_id = (
                    self._check_category(session, tx.user_id, category_id) if category_id is not None else None
                )
            if "isDeleted" in updates:
                tx.is_deleted = updates["isDeleted"]
            session.flush()
            # relationships may point at the previous account/category
            session.expire(tx, ["account", "category_ref"])
            return _transaction_row(tx)

    def soft_delete_transaction(self, owner_scope: Optional[int], transaction_id: int) -> None:
        with self.session_scope() as session:
            tx = self._scoped_transaction(session, owner_scope, transaction_id)
            tx.is_deleted = True

    def summarize(self, filters: TransactionFilter) -> dict[str, tuple[Decimal, int]]:
        # the per-type queries set the type themselves
        base = filters.without_type().clauses()
        totals: dict[str, tuple[Decimal, int]] = {}
        with self.session_scope() as session:
            for tx_type in TRANSACTION_TYPES:
                total, count = session.execute(
                    select(func.sum(Transaction.amount), func.count(Transaction.id)).where(
                        *base, Transaction.type == tx_type
                    )
                ).one()
                totals[tx_type] = (total if total is not None else Decimal("0.00"), count)
        return totals


def get_persistence() -> Persistence:
    return SqlPersistence(settings.database_url, settings.default_currency)
