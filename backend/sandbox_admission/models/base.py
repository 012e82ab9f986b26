"""Shared SQLModel base class with `objects` query helpers."""

from __future__ import annotations

from typing import ClassVar

from sqlmodel import SQLModel

from sandbox_admission.db.query_manager import ManagerDescriptor


class QueryModel(SQLModel, table=False):
    objects: ClassVar[ManagerDescriptor] = ManagerDescriptor()
