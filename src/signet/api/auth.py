"""Caller identity for the Signet API.

Authentication happens upstream (gateway or session middleware). The
authenticated user arrives in ``X-User-Id`` and the teams that user
administers in ``X-Team-Ids`` (comma-separated).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header
from pydantic import BaseModel, ConfigDict, Field

from signet.exceptions import AuthorizationError


class Caller(BaseModel):
    """The identity a request acts as.

    Attributes:
        user_id: Authenticated user.
        team_ids: Teams the user administers.
    """

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1)
    team_ids: list[str] = Field(default_factory=list)


def parse_team_ids(raw: str | None) -> list[str]:
    """Split a comma-separated header value, dropping blanks."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


async def get_caller(
    x_user_id: Annotated[str | None, Header()] = None,
    x_team_ids: Annotated[str | None, Header()] = None,
) -> Caller:
    """Dependency resolving the caller from request headers."""
    if not x_user_id or not x_user_id.strip():
        raise AuthorizationError("X-User-Id header is required")
    return Caller(user_id=x_user_id.strip(), team_ids=parse_team_ids(x_team_ids))


CallerDep = Annotated[Caller, Depends(get_caller)]
