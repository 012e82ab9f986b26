"""Base class for services that operate on one async session."""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from sqlmodel import SQLModel

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

ModelT = TypeVar("ModelT", bound=SQLModel)


class DBService:
    """Hold a session and provide the common write helpers."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add_commit_refresh(self, model: ModelT) -> ModelT:
        self.session.add(model)
        await self.session.commit()
        await self.session.refresh(model)
        return model
