from typing import Any, Awaitable, Callable, Dict, Hashable

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import Principal, get_current_principal
from app.db.base import get_session


class RequestContext:
    """Everything a service call needs about the current request.

    Holds the database session, the authenticated principal and a memo of
    database reads that lives exactly as long as the request.
    """

    def __init__(self, db: AsyncSession, principal: Principal):
        self.db = db
        self.principal = principal
        self._memo: Dict[Hashable, Any] = {}

    async def cached(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        if key in self._memo:
            return self._memo[key]
        value = await loader()
        # Misses are not remembered so a later create is visible
        if value is not None:
            self._memo[key] = value
        return value

    def forget(self, key: Hashable) -> None:
        self._memo.pop(key, None)


async def get_request_context(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
) -> RequestContext:
    return RequestContext(db, principal)
