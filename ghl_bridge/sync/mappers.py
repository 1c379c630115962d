"""Pure functions translating upstream payloads into local row values.

Shared by the webhook handlers, the incremental scheduler and the initial
sync. ``partial=True`` emits only the columns whose source fields are
present in the payload, so update events never blank out stored data.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from pydantic import ValidationError

from ..clock import as_utc, utcnow
from ..entities import EntityType
from ..errors import MappingError
from ..models import (
    Appointment,
    Calendar,
    Contact,
    GHLUser,
    Invoice,
    Opportunity,
    Pipeline,
    Product,
    Workflow,
)
from ..models.base import Base
from .schemas import (
    AppointmentPayload,
    CalendarPayload,
    ContactPayload,
    ConversationPayload,
    InvoicePayload,
    LocationPayload,
    MessagePayload,
    OpportunityPayload,
    PipelinePayload,
    PipelineStagePayload,
    ProductPayload,
    UpstreamPayload,
    UserPayload,
    WorkflowPayload,
)

log = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=UpstreamPayload)

ADDRESS_FIELDS = {
    "address1": "address1",
    "city": "city",
    "state": "state",
    "country": "country",
    "postal_code": "postalCode",
}


def parse_payload(schema: type[PayloadT], raw: Any) -> PayloadT:
    """Validate ``raw`` against ``schema``; raise MappingError on a bad shape."""
    if not isinstance(raw, dict):
        raise MappingError(f"Expected an object for {schema.__name__}, got {type(raw).__name__}")
    try:
        return schema.model_validate(raw)
    except ValidationError as exc:
        entity_id = raw.get("id") or raw.get("_id")
        raise MappingError(
            f"Invalid {schema.__name__} payload: {exc.error_count()} error(s)",
            details={
                "entity_id": entity_id,
                "errors": [{"loc": [str(p) for p in e["loc"]], "msg": e["msg"]} for e in exc.errors()],
            },
        ) from exc


class _RowBuilder:
    def __init__(self, payload: UpstreamPayload, partial: bool):
        self.payload = payload
        self.partial = partial
        self.values: dict[str, Any] = {}

    def provided(self, field: str) -> bool:
        return field in self.payload.model_fields_set

    def set(
        self,
        column: str,
        field: str | None = None,
        default: Any = None,
        convert: Callable[[Any], Any] | None = None,
    ) -> None:
        field = field or column
        provided = self.provided(field)
        if self.partial and not provided:
            return
        value = getattr(self.payload, field) if provided else None
        if value is None:
            value = default() if callable(default) else default
        elif convert is not None:
            value = convert(value)
        self.values[column] = value


def _base_row(payload: UpstreamPayload, location_id: str, partial: bool) -> _RowBuilder:
    row = _RowBuilder(payload, partial)
    row.values.update(
        id=payload.id,
        location_id=location_id,
        extra=payload.extras,
        last_synced_at=utcnow(),
    )
    return row


def _custom_fields(value: list[dict[str, Any]] | dict[str, Any]) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    result: dict[str, Any] = {}
    for field in value:
        key = field.get("id") or field.get("key")
        if key and "value" in field:
            result[key] = field["value"]
        elif key and "fieldValue" in field:
            result[key] = field["fieldValue"]
    return result


def map_contact(payload: ContactPayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    for column in (
        "first_name", "last_name", "email", "phone", "secondary_email",
        "company_name", "date_of_birth", "assigned_to", "source",
    ):
        row.set(column)
    row.set("tags", default=list)
    row.set("type", default="lead")
    row.set("dnd", default=False)
    row.set("dnd_settings", default=dict)
    row.set("custom_fields", default=dict, convert=_custom_fields)
    row.set("date_added", default=utcnow, convert=as_utc)
    row.set("date_updated", default=utcnow, convert=as_utc)

    if row.provided("name") or not partial:
        full_name = " ".join(p for p in (payload.first_name, payload.last_name) if p)
        row.values["name"] = payload.name or full_name or None

    address = dict(payload.address or {})
    for field, key in ADDRESS_FIELDS.items():
        value = getattr(payload, field)
        if value is not None:
            address[key] = value
    if address or not partial:
        row.values["address_data"] = address

    if not partial:
        row.values["is_deleted"] = False
    return row.values


def map_opportunity(payload: OpportunityPayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    for column in ("contact_id", "pipeline_id", "pipeline_stage_id", "assigned_to", "source", "loss_reason", "notes"):
        row.set(column)
    row.set("name", default="")
    row.set("status", default="open")
    row.set("monetary_value", default=0.0)
    row.set("currency", default="USD")
    row.set("custom_fields", default=dict, convert=_custom_fields)
    row.set("date_added", "created_at", default=utcnow, convert=as_utc)
    row.set("date_updated", "updated_at", default=utcnow, convert=as_utc)
    row.set("closed_at", convert=as_utc)
    return row.values


def map_appointment(payload: AppointmentPayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    for column in ("contact_id", "calendar_id", "assigned_user_id", "appointment_type", "notes", "address"):
        row.set(column)
    row.set("title", default="Appointment")
    row.set("start_time", convert=as_utc)
    row.set("end_time", convert=as_utc)
    row.set("timezone", default="UTC")

    status = payload.appointment_status or payload.status
    if status is not None or not partial:
        row.values["status"] = status or "confirmed"
        row.values["appointment_status"] = status or "confirmed"
    return row.values


def map_calendar(payload: CalendarPayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    row.set("name", default="")
    row.set("description")
    row.set("calendar_type", default="round_robin")
    row.set("is_active", default=True)
    return row.values


def map_pipeline(payload: PipelinePayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    row.set("name", default="")
    row.set("show_in_funnel", default=True)
    row.set("show_in_pie_chart", default=True)
    return row.values


def map_pipeline_stage(
    payload: PipelineStagePayload,
    location_id: str,
    pipeline_id: str,
    *,
    partial: bool = False,
) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    row.values["pipeline_id"] = pipeline_id
    row.set("name", default="")
    row.set("position", default=0)
    row.set("probability", default=0.0)
    return row.values


def map_user(payload: UserPayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    row.set("email")
    row.set("phone")
    row.set("is_active", default=True)
    if row.provided("name") or row.provided("first_name") or not partial:
        full_name = " ".join(p for p in (payload.first_name, payload.last_name) if p)
        row.values["name"] = payload.name or full_name
    role = payload.role or (payload.roles or {}).get("role")
    if role is not None or not partial:
        row.values["role"] = role or "user"
    return row.values


def _discount(value: float | dict[str, Any]) -> float:
    if isinstance(value, dict):
        return float(value.get("value") or 0)
    return float(value)


def _sent_to(value: list[Any] | dict[str, Any]) -> list[Any]:
    return [value] if isinstance(value, dict) else list(value)


def map_invoice(payload: InvoicePayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    for column in ("contact_id", "invoice_number", "name", "title", "payment_terms", "notes"):
        row.set(column)
    row.set("status", default="draft")
    row.set("due_date", convert=as_utc)
    row.set("issue_date", convert=as_utc)
    row.set("amount_due", default=0.0)
    row.set("total_amount", default=0.0)
    row.set("discount", default=0.0, convert=_discount)
    row.set("currency", default="USD")
    row.set("items", default=list)
    row.set("business_details", default=dict)
    row.set("sent_to", default=list, convert=_sent_to)
    return row.values


def map_conversation(payload: ConversationPayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    for column in ("contact_id", "channel", "last_message_body", "last_message_type", "assigned_to"):
        row.set(column)
    row.set("type", default="sms")
    row.set("unread_count", default=0)
    row.set("last_message_date", convert=as_utc)
    row.set("starred", default=False)
    row.set("is_archived", default=False)
    row.set("inbox_status", default="open")
    return row.values


def map_message(payload: MessagePayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    for column in ("conversation_id", "contact_id", "body", "direction", "source", "user_id"):
        row.set(column)
    row.set("message_type", default="SMS")
    row.set("status", default="delivered")
    row.set("content_type", default="text/plain")
    row.set("attachments", default=list)
    row.set("meta_data", default=dict)
    row.set("date_added", default=utcnow, convert=as_utc)
    return row.values


def map_location(payload: LocationPayload, tenant_id: uuid.UUID) -> dict[str, Any]:
    """Location rows are keyed by upstream id and owned by a tenant."""
    address = payload.address
    if isinstance(address, str):
        address = {"address": address}
    return {
        "id": payload.id,
        "tenant_id": tenant_id,
        "company_id": payload.company_id,
        "name": payload.name or "",
        "email": payload.email,
        "phone": payload.phone,
        "website": payload.website,
        "timezone": payload.timezone or "UTC",
        "logo_url": payload.logo_url,
        "address_data": address or {},
        "settings": payload.settings or {},
        "extra": payload.extras,
        "is_active": True,
        "last_sync_at": utcnow(),
    }


def map_product(payload: ProductPayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    row.set("name", default="")
    row.set("description")
    row.set("product_type")
    row.set("image_url", "image")
    return row.values


def map_workflow(payload: WorkflowPayload, location_id: str, *, partial: bool = False) -> dict[str, Any]:
    row = _base_row(payload, location_id, partial)
    row.set("name", default="")
    row.set("status", default="draft")
    row.set("version")
    return row.values


@dataclass(frozen=True)
class EntityMapping:
    schema: type[UpstreamPayload]
    model: type[Base]
    map: Callable[..., dict[str, Any]]


# Location-scoped record types with a one-to-one payload -> row mapping.
ENTITY_MAPPINGS: dict[EntityType, EntityMapping] = {
    EntityType.CONTACTS: EntityMapping(ContactPayload, Contact, map_contact),
    EntityType.OPPORTUNITIES: EntityMapping(OpportunityPayload, Opportunity, map_opportunity),
    EntityType.APPOINTMENTS: EntityMapping(AppointmentPayload, Appointment, map_appointment),
    EntityType.CALENDARS: EntityMapping(CalendarPayload, Calendar, map_calendar),
    EntityType.PIPELINES: EntityMapping(PipelinePayload, Pipeline, map_pipeline),
    EntityType.USERS: EntityMapping(UserPayload, GHLUser, map_user),
    EntityType.INVOICES: EntityMapping(InvoicePayload, Invoice, map_invoice),
    EntityType.PRODUCTS: EntityMapping(ProductPayload, Product, map_product),
    EntityType.WORKFLOWS: EntityMapping(WorkflowPayload, Workflow, map_workflow),
}
