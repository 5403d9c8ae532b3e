"""Row-level access policies for the store tables.

Every (table, operation) pair has one ``Rule``: an ordered tuple of named
clauses, any one of which grants the operation. The admin override is its
own clause appended to the rule, so the ownership clauses can be tested
without it. There is no deny clause; a rule with no satisfied clause denies.

The same rule table is rendered into PostgreSQL row-level-security policies
by the schema reconciler, so the in-process evaluator and the database
enforce identical grants.
"""

import enum
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from libs.common.logging import get_logger
from services.store_service.errors import Forbidden
from services.store_service.models import Order
from services.store_service.roles import Caller
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class Operation(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


SQL_COMMANDS = {
    Operation.CREATE: "INSERT",
    Operation.READ: "SELECT",
    Operation.UPDATE: "UPDATE",
    Operation.DELETE: "DELETE",
}


@dataclass(frozen=True)
class PolicyContext:
    db: AsyncSession
    caller: Caller
    row: Any


ClauseCheck = Callable[[PolicyContext], Awaitable[bool]]


@dataclass(frozen=True)
class Clause:
    """One grant. ``sql`` is the same predicate for RLS, with ``{uid}``."""

    name: str
    check: ClauseCheck
    sql: str


@dataclass(frozen=True)
class Rule:
    table: str
    operation: Operation
    clauses: tuple[Clause, ...] = ()
    admin_override: bool = True

    @property
    def admin_clause(self) -> Clause:
        return Clause(
            name=f"Admins can {self.operation.value} all {self.table}.",
            check=_caller_is_admin,
            sql="public.is_admin({uid})",
        )

    def effective_clauses(self) -> tuple[Clause, ...]:
        if self.admin_override:
            return self.clauses + (self.admin_clause,)
        return self.clauses


# ---------------------------------------------------------------------------
# Clause checks
# ---------------------------------------------------------------------------


async def _always(ctx: PolicyContext) -> bool:
    return True


async def _caller_is_admin(ctx: PolicyContext) -> bool:
    return ctx.caller.is_admin


def _matches_caller(caller: Caller, owner_id: Optional[uuid.UUID]) -> bool:
    return caller.is_authenticated and owner_id is not None and owner_id == caller.identity_id


async def parent_order_owner(
    db: AsyncSession, order_id: Optional[uuid.UUID]
) -> Optional[uuid.UUID]:
    """Owner of an order item, via its order (primary-key lookup)."""
    if order_id is None:
        return None
    result = await db.execute(select(Order.user_id).where(Order.id == order_id))
    return result.scalar_one_or_none()


def anyone(name: str) -> Clause:
    return Clause(name=name, check=_always, sql="true")


def owner(name: str, column: str = "user_id") -> Clause:
    """Caller is the row's owner (``column`` holds the owning identity id)."""

    async def _check(ctx: PolicyContext) -> bool:
        return _matches_caller(ctx.caller, getattr(ctx.row, column, None))

    return Clause(name=name, check=_check, sql=f"{{uid}} = {column}")


def parent_order_owned(name: str) -> Clause:
    """Caller owns the order this item belongs to."""

    async def _check(ctx: PolicyContext) -> bool:
        if not ctx.caller.is_authenticated:
            return False
        owner_id = await parent_order_owner(ctx.db, ctx.row.order_id)
        return _matches_caller(ctx.caller, owner_id)

    return Clause(
        name=name,
        check=_check,
        sql=(
            "EXISTS (SELECT 1 FROM orders WHERE orders.id = order_items.order_id "
            "AND orders.user_id = {uid})"
        ),
    )


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------

C, R, U, D = Operation.CREATE, Operation.READ, Operation.UPDATE, Operation.DELETE

POLICY_SET: tuple[Rule, ...] = (
    # Profiles are created by the identity hook only
    Rule("profiles", C, admin_override=False),
    Rule("profiles", R, (owner("Users can view their own profile.", "id"),)),
    Rule("profiles", U, (owner("Users can update their own profile.", "id"),)),
    Rule("profiles", D),
    Rule("categories", C),
    Rule("categories", R, (anyone("Public can view all categories."),)),
    Rule("categories", U),
    Rule("categories", D),
    Rule("products", C),
    Rule("products", R, (anyone("Public can view all products."),)),
    Rule("products", U),
    Rule("products", D),
    # Orders are never placed on behalf of another profile
    Rule(
        "orders",
        C,
        (owner("Users can create their own orders."),),
        admin_override=False,
    ),
    Rule("orders", R, (owner("Users can view their own orders."),)),
    Rule("orders", U),
    Rule("orders", D),
    Rule(
        "order_items",
        C,
        (parent_order_owned("Users can add items to their own orders."),),
        admin_override=False,
    ),
    Rule(
        "order_items",
        R,
        (parent_order_owned("Users can view items in their own orders."),),
    ),
    Rule("order_items", U),
    Rule("order_items", D),
    Rule(
        "reviews",
        C,
        (owner("Users can create their own reviews."),),
        admin_override=False,
    ),
    Rule("reviews", R, (anyone("Public can view all reviews."),)),
    Rule("reviews", U, (owner("Users can update their own reviews."),)),
    Rule("reviews", D, (owner("Users can delete their own reviews."),)),
)

GOVERNED_TABLES: tuple[str, ...] = tuple(dict.fromkeys(r.table for r in POLICY_SET))


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class PolicyEvaluator:
    """Decides allow/deny for (table, operation, caller, row).

    Nothing is cached: role and ownership are re-read on every call.
    """

    def __init__(self, rules: Iterable[Rule] = POLICY_SET):
        self._rules = {(rule.table, rule.operation): rule for rule in rules}

    def rule_for(self, table: str, operation: Operation) -> Optional[Rule]:
        return self._rules.get((table, operation))

    async def allows(
        self, db: AsyncSession, caller: Caller, operation: Operation, row: Any
    ) -> bool:
        table = row.__table__.name
        rule = self.rule_for(table, operation)
        if rule is None:
            return False
        ctx = PolicyContext(db=db, caller=caller, row=row)
        for clause in rule.effective_clauses():
            if await clause.check(ctx):
                logger.debug(
                    "%s %s granted to %s by %r",
                    operation.value,
                    table,
                    caller.identity_id,
                    clause.name,
                )
                return True
        return False

    async def authorize(
        self, db: AsyncSession, caller: Caller, operation: Operation, row: Any
    ) -> None:
        """Raise ``Forbidden`` unless some clause grants the operation."""
        if not await self.allows(db, caller, operation, row):
            table = row.__table__.name
            logger.info(
                "Denied %s on %s for %s",
                operation.value,
                table,
                caller.identity_id or "anonymous",
            )
            raise Forbidden(table, operation.value)

    async def filter_readable(
        self, db: AsyncSession, caller: Caller, rows: Sequence[Any]
    ) -> list[Any]:
        """Drop rows the caller cannot read, as RLS does for SELECT."""
        return [row for row in rows if await self.allows(db, caller, Operation.READ, row)]


evaluator = PolicyEvaluator()


# ---------------------------------------------------------------------------
# Row-level-security rendering (PostgreSQL)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyDefinition:
    table: str
    name: str
    command: str
    using: Optional[str]
    with_check: Optional[str]


def policy_definitions(
    uid_expression: str, rules: Iterable[Rule] = POLICY_SET
) -> list[PolicyDefinition]:
    """Flatten the rule table into one permissive RLS policy per clause."""
    definitions = []
    for rule in rules:
        command = SQL_COMMANDS[rule.operation]
        for clause in rule.effective_clauses():
            predicate = clause.sql.format(uid=uid_expression)
            using = None if rule.operation is Operation.CREATE else predicate
            with_check = (
                predicate
                if rule.operation in (Operation.CREATE, Operation.UPDATE)
                else None
            )
            definitions.append(
                PolicyDefinition(rule.table, clause.name, command, using, with_check)
            )
    return definitions


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def render_policy_ddl(definition: PolicyDefinition) -> list[str]:
    table = f"public.{definition.table}"
    name = quote_ident(definition.name)
    create = f"CREATE POLICY {name} ON {table} FOR {definition.command}"
    if definition.using is not None:
        create += f" USING ({definition.using})"
    if definition.with_check is not None:
        create += f" WITH CHECK ({definition.with_check})"
    return [f"DROP POLICY IF EXISTS {name} ON {table}", create]
