"""Products and workflows; rarely-changing location catalog data."""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UpstreamEntityMixin


class Product(UpstreamEntityMixin, Base):
    __tablename__ = "ghl_product"

    name: Mapped[str] = mapped_column(String(255), default="")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    product_type: Mapped[str | None] = mapped_column(String(50), default=None)
    image_url: Mapped[str | None] = mapped_column(String(500), default=None)


class Workflow(UpstreamEntityMixin, Base):
    __tablename__ = "ghl_workflow"

    name: Mapped[str] = mapped_column(String(255), default="")
    status: Mapped[str] = mapped_column(String(30), default="draft")
    version: Mapped[int | None] = mapped_column(default=None)
