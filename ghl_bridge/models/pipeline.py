"""Pipeline and stage models."""

from __future__ import annotations

from sqlalchemy import Boolean, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UpstreamEntityMixin


class Pipeline(UpstreamEntityMixin, Base):
    __tablename__ = "ghl_pipeline"

    name: Mapped[str] = mapped_column(String(255), default="")
    show_in_funnel: Mapped[bool] = mapped_column(Boolean, default=True)
    show_in_pie_chart: Mapped[bool] = mapped_column(Boolean, default=True)


class PipelineStage(UpstreamEntityMixin, Base):
    __tablename__ = "ghl_pipeline_stage"

    pipeline_id: Mapped[str] = mapped_column(String(100), index=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    position: Mapped[int] = mapped_column(Integer, default=0)
    probability: Mapped[float] = mapped_column(Float, default=0.0)
