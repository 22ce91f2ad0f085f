from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from keydash.keys.store import ApiKeyRecord


class KeyCreateRequest(BaseModel):
    name: str


class KeyUpdateRequest(BaseModel):
    id: str
    name: str


class KeyValidateRequest(BaseModel):
    api_key: str | None = Field(None, alias="apiKey")


class KeyObject(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    key: str
    created_at: str = Field(alias="createdAt")
    last_used_at: str | None = Field(None, alias="lastUsed")

    @classmethod
    def from_record(cls, record: ApiKeyRecord) -> KeyObject:
        return cls(
            id=record.id,
            name=record.name,
            key=record.secret,
            created_at=record.created_at,
            last_used_at=record.last_used_at,
        )


class KeyDeleteResponse(BaseModel):
    success: bool = True


class KeyValidateResponse(BaseModel):
    valid: bool
    error: str | None = None
