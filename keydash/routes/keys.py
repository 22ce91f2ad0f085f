import json
import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from keydash.schemas.errors import InvalidInputError
from keydash.schemas.keys import (
    KeyCreateRequest,
    KeyDeleteResponse,
    KeyObject,
    KeyUpdateRequest,
    KeyValidateRequest,
    KeyValidateResponse,
)

logger = logging.getLogger("keydash.routes")

router = APIRouter()


@router.get("/api-keys")
async def list_keys(request: Request) -> list[KeyObject]:
    key_service = request.app.state.key_service
    records = await key_service.list_keys()
    return [KeyObject.from_record(r) for r in records]


@router.post("/api-keys", status_code=201)
async def create_key(request: Request, body: KeyCreateRequest) -> KeyObject:
    key_service = request.app.state.key_service
    record = await key_service.create_key(body.name)
    return KeyObject.from_record(record)


@router.put("/api-keys")
async def update_key(request: Request, body: KeyUpdateRequest) -> KeyObject:
    key_service = request.app.state.key_service
    record = await key_service.rename_key(body.id, body.name)
    return KeyObject.from_record(record)


@router.delete("/api-keys")
async def delete_key(
    request: Request, key_id: str | None = Query(None, alias="id")
) -> KeyDeleteResponse:
    key_service = request.app.state.key_service
    await key_service.delete_key(key_id)
    return KeyDeleteResponse(success=True)


def _validate_response(status_code: int, valid: bool, error: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=KeyValidateResponse(valid=valid, error=error).model_dump(exclude_none=True),
    )


@router.post("/api-keys/validate")
async def validate_key(request: Request) -> JSONResponse:
    # An unknown key is a normal answer here, so errors keep the {valid, error} shape.
    try:
        body = KeyValidateRequest.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
        return _validate_response(400, False, "Invalid request body")

    key_service = request.app.state.key_service
    try:
        valid = await key_service.validate_key(body.api_key)
    except InvalidInputError as exc:
        return _validate_response(400, False, exc.message)
    except Exception:
        logger.exception("Key validation failed")
        return _validate_response(500, False, "Failed to validate API key")

    return _validate_response(200, valid)
