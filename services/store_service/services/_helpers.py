"""Shared helpers for store service operations."""

from typing import Any, TypeVar

from libs.common.logging import get_logger
from services.store_service.errors import Conflict, NotFound, ValidationFailure
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

ModelT = TypeVar("ModelT")


async def get_or_404(db: AsyncSession, model: type[ModelT], key: Any) -> ModelT:
    """Load a row by primary key; absent rows raise before any policy runs."""
    row = await db.get(model, key)
    if row is None:
        raise NotFound(model.__tablename__, key)
    return row


async def commit_or_conflict(db: AsyncSession, detail: str) -> None:
    """Commit, translating constraint violations into ``Conflict``."""
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        logger.info("Write rejected by constraint: %s (%s)", detail, exc.orig)
        raise Conflict(detail) from exc


def apply_changes(row: Any, changes: dict[str, Any]) -> None:
    """Copy ``changes`` onto ``row``; explicit nulls for NOT NULL columns are refused."""
    columns = inspect(type(row)).columns
    for field, value in changes.items():
        if value is None and field in columns and not columns[field].nullable:
            raise ValidationFailure(f"{row.__tablename__}.{field} cannot be null")
    for field, value in changes.items():
        setattr(row, field, value)
