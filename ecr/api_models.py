from __future__ import annotations

from pydantic import BaseModel, Field


class ContainerStatusOut(BaseModel):
    name: str = Field(..., description="Container name")
    unit: str = Field(..., description="systemd unit backing the container")
    status: str = Field(..., description="active|inactive")
    system_path: str | None = Field(None, description="Installed system closure (SYSTEM_PATH)")


class EventOut(BaseModel):
    id: int
    ts: str
    level: str
    container: str | None = None
    message: str
