from __future__ import annotations

from pydantic import BaseModel


class HealthOut(BaseModel):
    status: str
    app: str
    env: str


class MessageResponse(BaseModel):
    message: str
