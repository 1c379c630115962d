"""Pydantic schemas for upstream record payloads.

Fields are declared in snake_case and read from camelCase. Anything the
schema does not declare survives in ``extras`` and lands in the row's
``extra`` JSON column.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


OptionalDatetime = Annotated[datetime | None, BeforeValidator(_blank_to_none)]
OptionalFloat = Annotated[float | None, BeforeValidator(_blank_to_none)]


class UpstreamPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    location_id: str | None = None

    @property
    def extras(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class ContactPayload(UpstreamPayload):
    first_name: str | None = None
    last_name: str | None = None
    name: str | None = Field(default=None, validation_alias=AliasChoices("name", "contactName"))
    email: str | None = None
    phone: str | None = None
    secondary_email: str | None = None
    company_name: str | None = None
    date_of_birth: str | None = None
    tags: list[str] | None = None
    type: str | None = None
    dnd: bool | None = None
    dnd_settings: dict[str, Any] | None = None
    assigned_to: str | None = None
    source: str | None = None
    address: dict[str, Any] | None = None
    address1: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    custom_fields: list[dict[str, Any]] | dict[str, Any] | None = None
    date_added: OptionalDatetime = None
    date_updated: OptionalDatetime = None


class OpportunityPayload(UpstreamPayload):
    name: str | None = None
    contact_id: str | None = None
    status: str | None = None
    pipeline_id: str | None = None
    pipeline_stage_id: str | None = Field(
        default=None, validation_alias=AliasChoices("pipelineStageId", "stageId", "pipeline_stage_id")
    )
    monetary_value: OptionalFloat = None
    currency: str | None = None
    assigned_to: str | None = None
    source: str | None = None
    loss_reason: str | None = Field(
        default=None, validation_alias=AliasChoices("lossReason", "lostReason", "loss_reason")
    )
    custom_fields: list[dict[str, Any]] | dict[str, Any] | None = None
    notes: str | None = None
    created_at: OptionalDatetime = Field(default=None, validation_alias=AliasChoices("createdAt", "dateAdded"))
    updated_at: OptionalDatetime = Field(default=None, validation_alias=AliasChoices("updatedAt", "dateUpdated"))
    closed_at: OptionalDatetime = None


class AppointmentPayload(UpstreamPayload):
    contact_id: str | None = None
    calendar_id: str | None = None
    title: str | None = Field(default=None, validation_alias=AliasChoices("title", "name"))
    status: str | None = None
    appointment_status: str | None = None
    start_time: OptionalDatetime = None
    end_time: OptionalDatetime = None
    timezone: str | None = None
    assigned_user_id: str | None = None
    appointment_type: str | None = None
    notes: str | None = None
    address: str | None = None


class CalendarPayload(UpstreamPayload):
    name: str | None = None
    description: str | None = None
    calendar_type: str | None = None
    is_active: bool | None = None


class PipelineStagePayload(UpstreamPayload):
    name: str | None = None
    position: int | None = None
    probability: OptionalFloat = None


class PipelinePayload(UpstreamPayload):
    name: str | None = None
    show_in_funnel: bool | None = None
    show_in_pie_chart: bool | None = None
    stages: list[dict[str, Any]] = Field(default_factory=list)


class UserPayload(UpstreamPayload):
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    role: str | None = None
    roles: dict[str, Any] | None = None
    is_active: bool | None = None


class InvoicePayload(UpstreamPayload):
    contact_id: str | None = None
    invoice_number: str | None = None
    name: str | None = None
    title: str | None = None
    status: str | None = None
    due_date: OptionalDatetime = None
    issue_date: OptionalDatetime = None
    amount_due: OptionalFloat = None
    total_amount: OptionalFloat = Field(default=None, validation_alias=AliasChoices("totalAmount", "total"))
    discount: float | dict[str, Any] | None = None
    currency: str | None = None
    items: list[Any] | None = Field(default=None, validation_alias=AliasChoices("items", "invoiceItems"))
    business_details: dict[str, Any] | None = None
    payment_terms: str | None = None
    notes: str | None = None
    sent_to: list[Any] | dict[str, Any] | None = None


class ConversationPayload(UpstreamPayload):
    contact_id: str | None = None
    type: str | None = None
    channel: str | None = None
    unread_count: int | None = None
    last_message_body: str | None = None
    last_message_type: str | None = None
    last_message_date: OptionalDatetime = None
    assigned_to: str | None = None
    starred: bool | None = None
    is_archived: bool | None = None
    inbox_status: str | None = None


class MessagePayload(UpstreamPayload):
    id: str = Field(validation_alias=AliasChoices("id", "_id", "messageId"))
    conversation_id: str | None = None
    contact_id: str | None = None
    body: str | None = Field(default=None, validation_alias=AliasChoices("body", "message"))
    message_type: str | None = None
    direction: str | None = None
    status: str | None = None
    content_type: str | None = None
    attachments: list[Any] | None = None
    meta_data: dict[str, Any] | None = None
    source: str | None = None
    user_id: str | None = None
    date_added: OptionalDatetime = None


class LocationPayload(UpstreamPayload):
    name: str | None = None
    company_id: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    timezone: str | None = None
    logo_url: str | None = None
    address: dict[str, Any] | str | None = None
    settings: dict[str, Any] | None = None


class ProductPayload(UpstreamPayload):
    name: str | None = None
    description: str | None = None
    product_type: str | None = None
    image: str | None = None


class WorkflowPayload(UpstreamPayload):
    name: str | None = None
    status: str | None = None
    version: int | None = None
