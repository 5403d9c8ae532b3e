"""Schema reconciler: converge any historically deployed store shape onto
the current models.

The store has been through several hand-written revisions (integer and
UUID keys, a free-text ``category`` tag, a single ``image_url``, a ``roles``
lookup table, text-typed roles and statuses). Rather than replaying those
revisions, the reconciler inspects what is there and applies an ordered
sequence of idempotent steps:

    preflight    read-only checks; aborts before any change
    tables       create missing tables (foreign keys deferred)
    columns      add missing columns, backfill and tighten NOT NULL defaults
    key_types    repair primary/foreign key type drift (opt-in, destructive)
    constraints  add missing foreign keys, unique constraints and indexes
    obsolete     backfill from, then drop, superseded columns and tables
    policies     re-apply row-level security (PostgreSQL only)

Every step inspects before acting, so a second run performs no structural
action. All steps share one transaction; on PostgreSQL DDL is transactional
and a failed run leaves the store at its prior revision.
"""

import re
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from alembic.migration import MigrationContext
from alembic.operations import Operations
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.base import Base
from services.store_service.errors import SchemaIntegrityViolation
from services.store_service.models import (  # noqa: F401  (registers every table)
    AppRole,
    Category,
    IdentityRef,
    Order,
    OrderItem,
    Product,
    Profile,
    Review,
    SchemaLedgerEntry,
)
from services.store_service.models.catalog import ImageUrlList
from services.store_service.policies import (
    GOVERNED_TABLES,
    policy_definitions,
    quote_ident,
    render_policy_ddl,
)
from sqlalchemy import (
    Column,
    Enum as SAEnum,
    ForeignKeyConstraint,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    column,
    func,
    insert,
    inspect,
    literal_column,
    select,
    table,
    text,
    update,
)
from sqlalchemy.engine import Connection, Inspector
from sqlalchemy.exc import CompileError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.schema import CreateTable
from sqlalchemy.types import TypeEngine

logger = get_logger(__name__)

STEP_PREFLIGHT = "preflight"
STEP_TABLES = "tables"
STEP_COLUMNS = "columns"
STEP_KEY_TYPES = "key_types"
STEP_CONSTRAINTS = "constraints"
STEP_OBSOLETE = "obsolete"
STEP_POLICIES = "policies"


@dataclass(frozen=True)
class ReconcileAction:
    step: str
    action: str
    table: str
    detail: str = ""
    destructive: bool = False


@dataclass
class ReconcileReport:
    run_id: uuid.UUID
    dialect: str
    actions: list[ReconcileAction] = field(default_factory=list)
    policies_applied: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.actions)


@dataclass(frozen=True)
class KeyDrift:
    """A primary or foreign key column whose live type family differs."""

    table: str
    column: str
    live_family: str
    target_family: str
    primary_key: bool


# ---------------------------------------------------------------------------
# Superseded shapes
# ---------------------------------------------------------------------------


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")


def _backfill_category_id(connection: Connection) -> int:
    """Resolve the legacy ``products.category`` tag to a category id."""
    legacy = table(
        "products",
        column("id", Uuid),
        column("category", Text),
        column("category_id", Uuid),
    )
    categories = connection.execute(
        select(Category.id, Category.slug, Category.name)
    ).all()
    by_key: dict[str, uuid.UUID] = {}
    for category_id, slug, name in categories:
        by_key[slug] = category_id
        by_key[slugify(name)] = category_id

    rows = connection.execute(
        select(legacy.c.id, legacy.c.category).where(
            legacy.c.category_id.is_(None), legacy.c.category.is_not(None)
        )
    ).all()
    resolved = 0
    for product_id, tag in rows:
        category_id = by_key.get(slugify(tag))
        if category_id is None:
            logger.warning(
                "Product %s has category tag %r with no matching category",
                product_id,
                tag,
            )
            continue
        connection.execute(
            update(legacy)
            .where(legacy.c.id == product_id)
            .values(category_id=category_id)
        )
        resolved += 1
    return resolved


def _backfill_image_urls(connection: Connection) -> int:
    """Carry the legacy single ``image_url`` into ``image_urls``."""
    legacy = table(
        "products",
        column("id", Uuid),
        column("image_url", Text),
        column("image_urls", ImageUrlList),
    )
    rows = connection.execute(
        select(legacy.c.id, legacy.c.image_url, legacy.c.image_urls).where(
            legacy.c.image_url.is_not(None)
        )
    ).all()
    moved = 0
    for product_id, image_url, image_urls in rows:
        if image_urls:
            continue
        connection.execute(
            update(legacy)
            .where(legacy.c.id == product_id)
            .values(image_urls=[image_url])
        )
        moved += 1
    return moved


@dataclass(frozen=True)
class ObsoleteColumn:
    table: str
    column: str
    backfill: Optional[Callable[[Connection], int]] = None


OBSOLETE_COLUMNS: tuple[ObsoleteColumn, ...] = (
    ObsoleteColumn("products", "category", _backfill_category_id),
    ObsoleteColumn("products", "image_url", _backfill_image_urls),
)

# The ``roles`` lookup table was replaced by the app_role enum
OBSOLETE_TABLES: tuple[str, ...] = ("roles",)


# ---------------------------------------------------------------------------
# Type helpers
# ---------------------------------------------------------------------------


def type_family(type_: TypeEngine, dialect) -> str:
    """Coarse family of a column type: uuid, integer, text or the type name."""
    try:
        name = type_.compile(dialect=dialect).upper()
    except CompileError:
        name = type(type_).__name__.upper()
    if "UUID" in name:
        return "uuid"
    if "INT" in name or "SERIAL" in name:
        return "integer"
    if any(token in name for token in ("CHAR", "TEXT", "CLOB", "STRING")):
        return "text"
    return name.split("(")[0].strip()


def _server_default_sql(col: Column):
    arg = col.server_default.arg
    if isinstance(arg, str):
        return literal_column("'" + arg.replace("'", "''") + "'")
    return arg


def _ondelete(value: Optional[str]) -> str:
    return (value or "NO ACTION").upper()


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class Reconciler:
    """Runs the reconciliation steps on one synchronous connection.

    ``accept_data_loss`` is the operator's documented acceptance that key
    type repairs may drop columns and rows. Without it, any drift aborts the
    run before anything is changed.
    """

    def __init__(
        self,
        connection: Connection,
        *,
        accept_data_loss: bool = False,
        metadata: MetaData = Base.metadata,
        uid_expression: Optional[str] = None,
    ):
        self.connection = connection
        self.accept_data_loss = accept_data_loss
        self.metadata = metadata
        self.uid_expression = uid_expression or get_settings().RLS_UID_EXPRESSION
        self.dialect = connection.dialect
        self.ops = Operations(MigrationContext.configure(connection))
        self.report = ReconcileReport(run_id=uuid.uuid4(), dialect=self.dialect.name)
        self._step = STEP_PREFLIGHT

    @property
    def is_postgres(self) -> bool:
        return self.dialect.name == "postgresql"

    @property
    def target_tables(self) -> list[Table]:
        return [t for t in self.metadata.sorted_tables if not t.info.get("external")]

    @property
    def external_tables(self) -> list[Table]:
        return [t for t in self.metadata.sorted_tables if t.info.get("external")]

    def _inspector(self) -> Inspector:
        # A fresh inspector per use: reflection results are cached per instance
        return inspect(self.connection)

    def _record(
        self, action: str, table_name: str, detail: str = "", destructive: bool = False
    ) -> None:
        self.report.actions.append(
            ReconcileAction(self._step, action, table_name, detail, destructive)
        )
        log = logger.warning if destructive else logger.info
        log("[%s] %s %s %s", self._step, action, table_name, detail)

    # -- entry point --------------------------------------------------------

    def run(self) -> ReconcileReport:
        logger.info(
            "Reconciling schema (run %s, dialect=%s, accept_data_loss=%s)",
            self.report.run_id,
            self.dialect.name,
            self.accept_data_loss,
        )
        try:
            drifts = self.preflight()
            self._step = STEP_TABLES
            self.ensure_tables()
            self._step = STEP_COLUMNS
            self.ensure_columns()
            self._step = STEP_KEY_TYPES
            self.repair_key_types(drifts)
            self._step = STEP_CONSTRAINTS
            self.ensure_constraints()
            self._step = STEP_OBSOLETE
            self.drop_obsolete()
            self._step = STEP_POLICIES
            self.report.policies_applied = self.apply_policies()
        except SchemaIntegrityViolation as exc:
            logger.critical("Reconciliation aborted at %s: %s", self._step, exc.detail)
            raise
        except SQLAlchemyError as exc:
            logger.critical("Reconciliation aborted at %s: %s", self._step, exc)
            raise SchemaIntegrityViolation(
                f"Reconciliation aborted at step '{self._step}': {exc}"
            ) from exc

        self._write_ledger()
        logger.info(
            "Reconciliation %s finished: %d structural actions, %d policies",
            self.report.run_id,
            len(self.report.actions),
            self.report.policies_applied,
        )
        return self.report

    # -- step 0 -------------------------------------------------------------

    def preflight(self) -> list[KeyDrift]:
        insp = self._inspector()
        for ext in self.external_tables:
            if not insp.has_table(ext.name, schema=ext.schema):
                raise SchemaIntegrityViolation(
                    f"External table {ext.fullname} is missing; "
                    "the auth provider must be provisioned first"
                )

        drifts = self.detect_key_drift(insp)
        if drifts and not self.accept_data_loss:
            listing = ", ".join(
                f"{d.table}.{d.column} ({d.live_family} -> {d.target_family})"
                for d in drifts
            )
            raise SchemaIntegrityViolation(
                f"Key type drift requires accept_data_loss: {listing}"
            )

        self._check_unique_preconditions(insp)
        if self.is_postgres:
            self._check_enum_values(insp)
        return drifts

    def detect_key_drift(self, insp: Inspector) -> list[KeyDrift]:
        drifts = []
        for target in self.target_tables:
            if not insp.has_table(target.name):
                continue
            live_columns = {c["name"]: c for c in insp.get_columns(target.name)}
            for col in target.columns:
                if not (col.primary_key or col.foreign_keys):
                    continue
                live = live_columns.get(col.name)
                if live is None:
                    continue
                live_family = type_family(live["type"], self.dialect)
                target_family = type_family(col.type, self.dialect)
                if live_family != target_family:
                    drifts.append(
                        KeyDrift(
                            target.name,
                            col.name,
                            live_family,
                            target_family,
                            col.primary_key,
                        )
                    )
        return drifts

    def _live_unique_names(self, insp: Inspector, table_name: str) -> set[str]:
        names = {uc["name"] for uc in insp.get_unique_constraints(table_name)}
        names.update(ix["name"] for ix in insp.get_indexes(table_name) if ix["unique"])
        return names

    def _check_unique_preconditions(self, insp: Inspector) -> None:
        for target in self.target_tables:
            if not insp.has_table(target.name):
                continue
            live_columns = {c["name"] for c in insp.get_columns(target.name)}
            live_uniques = self._live_unique_names(insp, target.name)
            for constraint in target.constraints:
                if not isinstance(constraint, UniqueConstraint):
                    continue
                if constraint.name in live_uniques:
                    continue
                cols = [c.name for c in constraint.columns]
                if not set(cols) <= live_columns:
                    continue
                keyed = table(target.name, *[column(c) for c in cols])
                duplicate = self.connection.execute(
                    select(*keyed.c)
                    .group_by(*keyed.c)
                    .having(func.count() > 1)
                    .limit(1)
                ).first()
                if duplicate is not None:
                    raise SchemaIntegrityViolation(
                        f"Cannot add {constraint.name}: duplicate {cols} "
                        f"value {tuple(duplicate)} in {target.name}"
                    )

    def _enum_columns(self, target: Table) -> list[Column]:
        return [c for c in target.columns if isinstance(c.type, SAEnum)]

    def _enum_realignments(self, insp: Inspector) -> list[tuple[Table, Column]]:
        """Enum columns whose live type is not the target enum (PostgreSQL)."""
        pending = []
        for target in self.target_tables:
            if not insp.has_table(target.name):
                continue
            live_columns = {c["name"]: c for c in insp.get_columns(target.name)}
            for col in self._enum_columns(target):
                live = live_columns.get(col.name)
                if live is None:
                    continue
                if getattr(live["type"], "name", None) != col.type.name:
                    pending.append((target, col))
        return pending

    def _check_enum_values(self, insp: Inspector) -> None:
        for target, col in self._enum_realignments(insp):
            allowed = set(col.type.enums)
            found = {
                value
                for (value,) in self.connection.execute(
                    text(
                        f"SELECT DISTINCT {col.name}::text FROM {target.name} "
                        f"WHERE {col.name} IS NOT NULL"
                    )
                )
            }
            invalid = found - allowed
            if invalid:
                raise SchemaIntegrityViolation(
                    f"{target.name}.{col.name} holds values outside "
                    f"{col.type.name}: {sorted(invalid)}"
                )

    # -- step 1 -------------------------------------------------------------

    def _create_enum_types(self, target: Table) -> None:
        if not self.is_postgres:
            return
        for col in self._enum_columns(target):
            col.type.create(self.connection, checkfirst=True)

    def _create_table(self, target: Table) -> None:
        self._create_enum_types(target)
        self.connection.execute(CreateTable(target, include_foreign_key_constraints=[]))
        for index in target.indexes:
            index.create(self.connection)

    def ensure_tables(self) -> None:
        insp = self._inspector()
        for target in self.target_tables:
            if insp.has_table(target.name):
                continue
            self._create_table(target)
            self._record("create_table", target.name)

    # -- step 2 -------------------------------------------------------------

    def ensure_columns(self) -> None:
        insp = self._inspector()
        for target in self.target_tables:
            live_columns = {c["name"]: c for c in insp.get_columns(target.name)}
            for col in target.columns:
                live = live_columns.get(col.name)
                if live is None:
                    self._add_column(target, col)
                elif live["nullable"] and not col.nullable and col.server_default is not None:
                    self._tighten_not_null(target, col, live["type"])

    def _add_column(self, target: Table, col: Column) -> None:
        if not col.nullable and col.server_default is None:
            raise SchemaIntegrityViolation(
                f"Cannot add NOT NULL column {target.name}.{col.name} "
                "without a server default"
            )
        if self.is_postgres and isinstance(col.type, SAEnum):
            col.type.create(self.connection, checkfirst=True)
        server_default = col.server_default.arg if col.server_default is not None else None
        self.ops.add_column(
            target.name,
            Column(
                col.name,
                col.type,
                nullable=col.nullable,
                server_default=server_default,
            ),
        )
        self._record("add_column", target.name, col.name)

    def _tighten_not_null(self, target: Table, col: Column, live_type) -> None:
        # Bare table clause: the model's onupdate columns may not exist yet
        live = table(target.name, column(col.name))
        filled = self.connection.execute(
            update(live)
            .where(live.c[col.name].is_(None))
            .values({col.name: _server_default_sql(col)})
        ).rowcount
        with self.ops.batch_alter_table(target.name) as batch:
            batch.alter_column(col.name, existing_type=live_type, nullable=False)
        self._record("set_not_null", target.name, f"{col.name} (backfilled {filled})")

    # -- step 3 -------------------------------------------------------------

    def repair_key_types(self, drifts: list[KeyDrift]) -> None:
        if self.is_postgres:
            self._realign_enums()
        if not drifts:
            return

        rebuilt = {d.table for d in drifts if d.primary_key}
        tables_by_name = {t.name: t for t in self.target_tables}

        for target in reversed(self.target_tables):
            if target.name in rebuilt:
                self._drop_for_rebuild(target)
        for target in self.target_tables:
            if target.name in rebuilt:
                self._create_table(target)
                self._record("rebuild_table", target.name, "primary key type", True)

        for drift in drifts:
            if drift.primary_key or drift.table in rebuilt:
                continue
            self._replace_key_column(tables_by_name[drift.table], drift)

    def _realign_enums(self) -> None:
        for target, col in self._enum_realignments(self._inspector()):
            col.type.create(self.connection, checkfirst=True)
            name = col.name
            self.connection.execute(
                text(f"ALTER TABLE {target.name} ALTER COLUMN {name} DROP DEFAULT")
            )
            self.connection.execute(
                text(
                    f"ALTER TABLE {target.name} ALTER COLUMN {name} "
                    f"TYPE {col.type.name} USING {name}::text::{col.type.name}"
                )
            )
            if col.server_default is not None:
                self.connection.execute(
                    text(
                        f"ALTER TABLE {target.name} ALTER COLUMN {name} "
                        f"SET DEFAULT '{col.server_default.arg}'"
                    )
                )
            self._record("realign_enum", target.name, f"{name} -> {col.type.name}")

    def _drop_foreign_keys(self, table_name: str, names: list[str]) -> None:
        if not names:
            return
        with self.ops.batch_alter_table(table_name) as batch:
            for name in names:
                batch.drop_constraint(name, type_="foreignkey")
        for name in names:
            self._record("drop_foreign_key", table_name, name)

    def _drop_for_rebuild(self, target: Table) -> None:
        insp = self._inspector()
        for other in insp.get_table_names():
            if other == target.name:
                continue
            referencing = [
                fk["name"]
                for fk in insp.get_foreign_keys(other)
                if fk["referred_table"] == target.name and fk.get("name")
            ]
            self._drop_foreign_keys(other, referencing)
        self.ops.drop_table(target.name)

    def _replace_key_column(self, target: Table, drift: KeyDrift) -> None:
        insp = self._inspector()
        col = target.c[drift.column]

        if not col.nullable:
            # Every row loses its reference and cannot satisfy NOT NULL
            deleted = self.connection.execute(
                text(f"DELETE FROM {target.name}")
            ).rowcount
            self._record("delete_rows", target.name, f"{deleted} rows", True)

        for index in insp.get_indexes(target.name):
            if drift.column in index["column_names"]:
                self.ops.drop_index(index["name"], table_name=target.name)

        fk_names = [
            fk["name"]
            for fk in insp.get_foreign_keys(target.name)
            if drift.column in fk["constrained_columns"] and fk.get("name")
        ]
        with self.ops.batch_alter_table(target.name) as batch:
            for name in fk_names:
                batch.drop_constraint(name, type_="foreignkey")
            batch.drop_column(drift.column)
            batch.add_column(Column(col.name, col.type, nullable=col.nullable))
        self._record(
            "replace_column",
            target.name,
            f"{drift.column} ({drift.live_family} -> {drift.target_family})",
            True,
        )

    # -- step 4 -------------------------------------------------------------

    def _fk_matches(self, live: dict, constraint: ForeignKeyConstraint) -> bool:
        referred = constraint.referred_table
        if live["referred_table"] != referred.name:
            return False
        if referred.schema is not None and live.get("referred_schema") != referred.schema:
            return False
        if list(live["constrained_columns"]) != [c.name for c in constraint.columns]:
            return False
        live_ondelete = (live.get("options") or {}).get("ondelete")
        return _ondelete(live_ondelete) == _ondelete(constraint.ondelete)

    def _check_fk_types(self, insp: Inspector, constraint: ForeignKeyConstraint) -> None:
        local_table = constraint.table.name
        referred = constraint.referred_table
        local_live = {c["name"]: c for c in insp.get_columns(local_table)}
        remote_live = {
            c["name"]: c for c in insp.get_columns(referred.name, schema=referred.schema)
        }
        for element in constraint.elements:
            local = local_live[element.parent.name]
            remote = remote_live.get(element.column.name)
            if remote is None:
                raise SchemaIntegrityViolation(
                    f"{constraint.name}: {referred.fullname}.{element.column.name} missing"
                )
            local_family = type_family(local["type"], self.dialect)
            remote_family = type_family(remote["type"], self.dialect)
            if local_family != remote_family:
                raise SchemaIntegrityViolation(
                    f"{constraint.name}: {local_table}.{element.parent.name} "
                    f"({local_family}) cannot reference "
                    f"{referred.fullname}.{element.column.name} ({remote_family})"
                )

    def ensure_constraints(self) -> None:
        for target in self.target_tables:
            insp = self._inspector()
            live_fks = {
                fk["name"]: fk for fk in insp.get_foreign_keys(target.name) if fk.get("name")
            }
            live_uniques = self._live_unique_names(insp, target.name)

            stale_fks: list[str] = []
            missing_fks: list[ForeignKeyConstraint] = []
            for constraint in sorted(target.foreign_key_constraints, key=lambda c: c.name):
                live = live_fks.get(constraint.name)
                if live is not None and self._fk_matches(live, constraint):
                    continue
                self._check_fk_types(insp, constraint)
                if live is not None:
                    stale_fks.append(constraint.name)
                missing_fks.append(constraint)

            missing_uniques = [
                c
                for c in target.constraints
                if isinstance(c, UniqueConstraint) and c.name not in live_uniques
            ]

            if stale_fks or missing_fks or missing_uniques:
                with self.ops.batch_alter_table(target.name) as batch:
                    for name in stale_fks:
                        batch.drop_constraint(name, type_="foreignkey")
                    for constraint in missing_fks:
                        batch.create_foreign_key(
                            constraint.name,
                            constraint.referred_table.name,
                            [c.name for c in constraint.columns],
                            [e.column.name for e in constraint.elements],
                            referent_schema=constraint.referred_table.schema,
                            ondelete=constraint.ondelete,
                        )
                    for constraint in missing_uniques:
                        batch.create_unique_constraint(
                            constraint.name, [c.name for c in constraint.columns]
                        )
                for name in stale_fks:
                    self._record("drop_foreign_key", target.name, f"{name} (superseded)")
                for constraint in missing_fks:
                    self._record("add_foreign_key", target.name, constraint.name)
                for constraint in missing_uniques:
                    self._record("add_unique", target.name, constraint.name)

            live_indexes = {ix["name"] for ix in self._inspector().get_indexes(target.name)}
            for index in sorted(target.indexes, key=lambda i: i.name):
                if index.name in live_indexes:
                    continue
                index.create(self.connection)
                self._record("add_index", target.name, index.name)

    # -- step 5 -------------------------------------------------------------

    def drop_obsolete(self) -> None:
        for obsolete in OBSOLETE_COLUMNS:
            insp = self._inspector()
            if not insp.has_table(obsolete.table):
                continue
            live_columns = {c["name"] for c in insp.get_columns(obsolete.table)}
            if obsolete.column not in live_columns:
                continue
            if obsolete.backfill is not None:
                moved = obsolete.backfill(self.connection)
                self._record("backfill", obsolete.table, f"{obsolete.column}: {moved} rows")
            for index in insp.get_indexes(obsolete.table):
                if obsolete.column in index["column_names"]:
                    self.ops.drop_index(index["name"], table_name=obsolete.table)
            with self.ops.batch_alter_table(obsolete.table) as batch:
                batch.drop_column(obsolete.column)
            self._record("drop_column", obsolete.table, obsolete.column)

        insp = self._inspector()
        for name in OBSOLETE_TABLES:
            if insp.has_table(name):
                self.ops.drop_table(name)
                self._record("drop_table", name, "superseded", True)

    # -- step 6 -------------------------------------------------------------

    def apply_policies(self) -> int:
        """Re-apply the full policy set. Always runs; never recorded as drift."""
        if not self.is_postgres:
            logger.info(
                "Dialect %s has no row-level security; the in-process "
                "policy evaluator is authoritative",
                self.dialect.name,
            )
            return 0

        definitions = policy_definitions(self.uid_expression)
        current = {(d.table, d.name) for d in definitions}

        self.connection.execute(text(IS_ADMIN_FUNCTION))
        for table_name in GOVERNED_TABLES:
            self.connection.execute(
                text(f"ALTER TABLE public.{table_name} ENABLE ROW LEVEL SECURITY")
            )

        existing = self.connection.execute(
            text(
                "SELECT tablename, policyname FROM pg_policies "
                "WHERE schemaname = 'public'"
            )
        ).all()
        for table_name, policy_name in existing:
            if table_name in GOVERNED_TABLES and (table_name, policy_name) not in current:
                self.connection.execute(
                    text(
                        f"DROP POLICY IF EXISTS {quote_ident(policy_name)} "
                        f"ON public.{table_name}"
                    )
                )
                logger.warning("Dropped stale policy %r on %s", policy_name, table_name)

        for definition in definitions:
            for statement in render_policy_ddl(definition):
                self.connection.execute(text(statement))

        self._install_identity_trigger()
        return len(definitions)

    def _install_identity_trigger(self) -> None:
        identity = IdentityRef.__table__
        qualified = f"{identity.schema or 'public'}.{identity.name}"
        roles = ", ".join(f"'{role.value}'" for role in AppRole)
        self.connection.execute(text(HANDLE_NEW_USER_FUNCTION.format(roles=roles)))
        self.connection.execute(
            text(f"DROP TRIGGER IF EXISTS on_auth_user_created ON {qualified}")
        )
        self.connection.execute(
            text(
                f"CREATE TRIGGER on_auth_user_created AFTER INSERT ON {qualified} "
                "FOR EACH ROW EXECUTE FUNCTION public.handle_new_user()"
            )
        )

    # -- ledger -------------------------------------------------------------

    def _write_ledger(self) -> None:
        if not self.report.actions:
            return
        self.connection.execute(
            insert(SchemaLedgerEntry.__table__),
            [
                {
                    "run_id": self.report.run_id,
                    "step": action.step,
                    "action": action.action,
                    "table_name": action.table,
                    "detail": action.detail,
                }
                for action in self.report.actions
            ],
        )


IS_ADMIN_FUNCTION = """
CREATE OR REPLACE FUNCTION public.is_admin(uid uuid)
RETURNS boolean
LANGUAGE sql
STABLE
SECURITY DEFINER SET search_path = public
AS $$
  SELECT EXISTS (SELECT 1 FROM public.profiles WHERE id = uid AND role = 'admin')
$$
"""

HANDLE_NEW_USER_FUNCTION = """
CREATE OR REPLACE FUNCTION public.handle_new_user()
RETURNS trigger
LANGUAGE plpgsql
SECURITY DEFINER SET search_path = public
AS $$
BEGIN
  INSERT INTO public.profiles (id, full_name, role)
  VALUES (
    new.id,
    new.raw_user_meta_data->>'full_name',
    CASE
      WHEN new.raw_user_meta_data->>'role' IN ({roles})
        THEN (new.raw_user_meta_data->>'role')::public.app_role
      ELSE 'user'::public.app_role
    END
  )
  ON CONFLICT (id) DO NOTHING;
  RETURN new;
END;
$$
"""


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def reconcile(
    engine: AsyncEngine,
    *,
    accept_data_loss: bool = False,
    metadata: MetaData = Base.metadata,
) -> ReconcileReport:
    """Reconcile the store behind ``engine`` in a single transaction."""
    async with engine.begin() as conn:
        return await conn.run_sync(
            lambda sync_conn: Reconciler(
                sync_conn, accept_data_loss=accept_data_loss, metadata=metadata
            ).run()
        )


def snapshot_schema(connection: Connection) -> dict:
    """Structural snapshot (tables, columns, keys, indexes) for diffing."""
    insp = inspect(connection)
    snapshot = {}
    for table_name in sorted(insp.get_table_names()):
        snapshot[table_name] = {
            "columns": [
                (
                    c["name"],
                    type_family(c["type"], connection.dialect),
                    bool(c["nullable"]),
                )
                for c in insp.get_columns(table_name)
            ],
            "foreign_keys": sorted(
                (
                    fk.get("name") or "",
                    tuple(fk["constrained_columns"]),
                    fk["referred_table"],
                )
                for fk in insp.get_foreign_keys(table_name)
            ),
            "unique": sorted(
                uc["name"] or "" for uc in insp.get_unique_constraints(table_name)
            ),
            "indexes": sorted(ix["name"] for ix in insp.get_indexes(table_name)),
        }
    return snapshot
