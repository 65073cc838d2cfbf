from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Generic, Mapping, Sequence, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.audit import write_audit
from maintrack.errors import GatewayError, NotFoundError, ValidationError
from maintrack.models import Asset, Base, Task, User

logger = logging.getLogger(__name__)

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

ROLES = ("admin", "maintainer", "supervisor")


@dataclass(frozen=True)
class FieldSpec:
  name: str
  kind: str = "text"  # text | date | posint | bool | choice
  label: str = ""
  required: bool = False
  required_message: str | None = None
  immutable: bool = False
  choices: tuple[str, ...] = ()
  default: Any = None


@dataclass(frozen=True)
class EntitySchema:
  entity_type: str
  model: type[Base]
  fields: tuple[FieldSpec, ...]
  order_by: tuple[Any, ...] = ()
  audit_prefix: str = ""

  def field(self, name: str) -> FieldSpec | None:
    for f in self.fields:
      if f.name == name:
        return f
    return None


def _gateway_message(exc: SQLAlchemyError) -> str:
  orig = getattr(exc, "orig", None)
  return str(orig if orig is not None else exc)


def parse_date(value: Any, *, label: str = "date") -> date | None:
  if value is None:
    return None
  if isinstance(value, datetime):
    return value.date()
  if isinstance(value, date):
    return value
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    try:
      if _DATE_ONLY_RE.fullmatch(s):
        return date.fromisoformat(s)
      return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
      raise ValidationError(f"Invalid {label}") from None
  raise ValidationError(f"Invalid {label}")


def parse_positive_int(value: Any, *, label: str = "number") -> int | None:
  if value is None:
    return None
  if isinstance(value, bool):
    raise ValidationError(f"{label} must be a positive whole number")
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    try:
      value = int(s)
    except ValueError:
      raise ValidationError(f"{label} must be a positive whole number") from None
  if isinstance(value, float):
    if not value.is_integer():
      raise ValidationError(f"{label} must be a positive whole number")
    value = int(value)
  if not isinstance(value, int) or value <= 0:
    raise ValidationError(f"{label} must be a positive whole number")
  return value


def _normalize(spec: FieldSpec, value: Any) -> Any:
  label = spec.label or spec.name
  if spec.kind == "date":
    return parse_date(value, label=label)
  if spec.kind == "posint":
    return parse_positive_int(value, label=label)
  if spec.kind == "bool":
    return bool(value) if value is not None else bool(spec.default)
  if spec.kind == "choice":
    if value not in spec.choices:
      raise ValidationError(f"Invalid {label}")
    return value
  if value is None:
    return None
  text = str(value)
  if spec.required:
    return text.strip()
  # optional free text: an empty form field is stored as null
  return text if text.strip() else None


def validate_fields(schema: EntitySchema, fields: Mapping[str, Any], *, partial: bool) -> dict[str, Any]:
  """
  Check required fields and normalise optional ones.

  With `partial=True` only the supplied keys are validated (PATCH); required
  fields may be omitted but never blanked.
  """
  out: dict[str, Any] = {}
  for spec in schema.fields:
    present = spec.name in fields
    if partial and not present:
      continue
    if partial and spec.immutable:
      raise ValidationError(f"{(spec.label or spec.name).capitalize()} cannot be changed")
    raw = fields.get(spec.name)
    if spec.required:
      if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(spec.required_message or f"{spec.label or spec.name} is required")
    if not present and spec.kind == "bool":
      out[spec.name] = bool(spec.default)
      continue
    if not present and spec.default is not None:
      out[spec.name] = spec.default
      continue
    out[spec.name] = _normalize(spec, raw)
  return out


M = TypeVar("M", bound=Base)


@dataclass
class EntityAccessor(Generic[M]):
  schema: EntitySchema
  _pk: str = field(default="id")

  @property
  def model(self) -> type[M]:
    return self.schema.model  # type: ignore[return-value]

  def _pk_col(self):
    return getattr(self.model, self._pk)

  async def list(self, db: AsyncSession, *, where: Sequence[Any] = ()) -> list[M]:
    q = select(self.model)
    for clause in where:
      q = q.where(clause)
    if self.schema.order_by:
      q = q.order_by(*self.schema.order_by)
    try:
      res = await db.execute(q)
    except SQLAlchemyError as exc:
      logger.exception("Error fetching %s", self.schema.entity_type)
      raise GatewayError(_gateway_message(exc)) from exc
    return list(res.scalars().all())

  async def get(self, db: AsyncSession, entity_id: str) -> M:
    try:
      res = await db.execute(select(self.model).where(self._pk_col() == entity_id))
    except SQLAlchemyError as exc:
      logger.exception("Error fetching %s %s", self.schema.entity_type, entity_id)
      raise GatewayError(_gateway_message(exc)) from exc
    row = res.scalar_one_or_none()
    if row is None:
      raise NotFoundError(f"{self.schema.entity_type} not found")
    return row

  async def count(self, db: AsyncSession, *where: Any) -> int:
    q = select(func.count()).select_from(self.model)
    for clause in where:
      q = q.where(clause)
    try:
      res = await db.execute(q)
    except SQLAlchemyError as exc:
      logger.exception("Error counting %s", self.schema.entity_type)
      raise GatewayError(_gateway_message(exc)) from exc
    return int(res.scalar_one() or 0)

  async def create(
    self,
    db: AsyncSession,
    fields: Mapping[str, Any],
    *,
    actor_id: str | None = None,
    extra: Mapping[str, Any] | None = None,
  ) -> M:
    values = validate_fields(self.schema, fields, partial=False)
    if extra:
      values.update(extra)
    row = self.model(**values)
    db.add(row)
    try:
      await db.flush()
      await write_audit(
        db,
        event_type=f"{self.schema.audit_prefix}.created",
        entity_type=self.schema.entity_type,
        entity_id=getattr(row, self._pk),
        actor_id=actor_id,
        payload=values,
      )
      await db.commit()
    except SQLAlchemyError as exc:
      await db.rollback()
      logger.warning("Create %s rejected: %s", self.schema.entity_type, _gateway_message(exc))
      raise GatewayError(_gateway_message(exc)) from exc
    await db.refresh(row)
    return row

  async def update(
    self,
    db: AsyncSession,
    entity_id: str,
    fields: Mapping[str, Any],
    *,
    actor_id: str | None = None,
  ) -> M:
    values = validate_fields(self.schema, fields, partial=True)
    row = await self.get(db, entity_id)
    for k, v in values.items():
      setattr(row, k, v)
    try:
      await write_audit(
        db,
        event_type=f"{self.schema.audit_prefix}.updated",
        entity_type=self.schema.entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        payload=values,
      )
      await db.commit()
    except SQLAlchemyError as exc:
      await db.rollback()
      logger.warning("Update %s %s rejected: %s", self.schema.entity_type, entity_id, _gateway_message(exc))
      raise GatewayError(_gateway_message(exc)) from exc
    await db.refresh(row)
    return row

  async def delete(self, db: AsyncSession, entity_id: str, *, actor_id: str | None = None) -> None:
    # Dependent rows are the schema's business (ON DELETE CASCADE), not ours.
    try:
      await db.execute(delete(self.model).where(self._pk_col() == entity_id))
      await write_audit(
        db,
        event_type=f"{self.schema.audit_prefix}.deleted",
        entity_type=self.schema.entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
      )
      await db.commit()
    except SQLAlchemyError as exc:
      await db.rollback()
      logger.warning("Delete %s %s rejected: %s", self.schema.entity_type, entity_id, _gateway_message(exc))
      raise GatewayError(_gateway_message(exc)) from exc


ASSET_SCHEMA = EntitySchema(
  entity_type="Asset",
  model=Asset,
  audit_prefix="asset",
  fields=(
    FieldSpec("name", required=True, required_message="Asset name is required"),
    FieldSpec("type", required=True, required_message="Asset type is required"),
    FieldSpec("description"),
    FieldSpec("purchasedate", kind="date", label="purchase date"),
  ),
  order_by=(Asset.created_at.desc(), Asset.id.desc()),
)

TASK_SCHEMA = EntitySchema(
  entity_type="Task",
  model=Task,
  audit_prefix="task",
  fields=(
    FieldSpec("asset_id", required=True, required_message="Please select an asset"),
    FieldSpec("task_name", required=True, required_message="Task name is required"),
    FieldSpec("last_done_date", kind="date", label="last done date"),
    FieldSpec("next_due_date", kind="date", label="next due date"),
    FieldSpec("frequency_days", kind="posint", label="Frequency"),
    FieldSpec("notified", kind="bool", default=False),
    FieldSpec("notes"),
  ),
  order_by=(Task.next_due_date.asc().nulls_last(), Task.created_at.asc()),
)

USER_SCHEMA = EntitySchema(
  entity_type="User",
  model=User,
  audit_prefix="user",
  fields=(
    FieldSpec("email", required=True, required_message="Email is required", immutable=True),
    FieldSpec("name", required=True, required_message="Name is required"),
    FieldSpec("role", kind="choice", label="role", choices=ROLES, default="maintainer"),
  ),
  order_by=(User.role.asc(), User.name.asc()),
)

assets = EntityAccessor[Asset](ASSET_SCHEMA)
tasks = EntityAccessor[Task](TASK_SCHEMA)
users = EntityAccessor[User](USER_SCHEMA)
