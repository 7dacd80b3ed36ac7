from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from solveur.apps.api.deps import Principal, get_current_tenant, get_db, require_role
from solveur.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from solveur.apps.api.response import ApiModel, SuccessEnvelope, success_response
from solveur.domain.models import Personality, Tenant
from solveur.domain.personality import ResponseLength, Style, Tone
from solveur.services import personality as personality_service


router = APIRouter(prefix="/personalities", tags=["personalities"], responses=DEFAULT_ERROR_RESPONSES)

# Philosophy and values arrive as [{key, value}, ...] or as an ordered object.
Entries = list[dict[str, str]] | dict[str, str]


class EntryResponse(ApiModel):
    key: str
    value: str


class PersonalityResponse(ApiModel):
    id: str
    name: str
    description: str | None
    tone: str
    style: str
    expertise: list[str]
    philosophy: list[EntryResponse]
    values: list[EntryResponse]
    brand_voice: str | None
    custom_prompt: str | None
    response_length: str
    language: str
    context: dict[str, Any] | None
    is_active: bool
    created_at: str


class PersonalityCreateRequest(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    tone: Tone | None = None
    style: Style | None = None
    expertise: list[str] | None = None
    philosophy: Entries | None = None
    values: Entries | None = None
    brand_voice: str | None = None
    custom_prompt: str | None = None
    response_length: ResponseLength | None = None
    language: str | None = Field(default=None, max_length=16)
    context: dict[str, Any] | None = None
    is_active: bool | None = None


class PersonalityUpdateRequest(PersonalityCreateRequest):
    name: str | None = Field(default=None, max_length=200)


def _to_response(personality: Personality) -> PersonalityResponse:
    return PersonalityResponse(
        id=personality.id,
        name=personality.name,
        description=personality.description,
        tone=personality.tone,
        style=personality.style,
        expertise=list(personality.expertise_json or []),
        philosophy=[EntryResponse(**entry) for entry in personality.philosophy_json or []],
        values=[EntryResponse(**entry) for entry in personality.values_json or []],
        brand_voice=personality.brand_voice,
        custom_prompt=personality.custom_prompt,
        response_length=personality.response_length,
        language=personality.language,
        context=personality.context_json,
        is_active=personality.is_active,
        created_at=personality.created_at.isoformat(),
    )


def _fields(payload: PersonalityCreateRequest) -> dict[str, Any]:
    # Only what the client sent; omitted fields keep their stored values on update.
    return payload.model_dump(exclude_unset=True)


@router.get("", response_model=SuccessEnvelope[list[PersonalityResponse]] | list[PersonalityResponse])
async def list_personalities(
    request: Request,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
) -> dict:
    items = await personality_service.list_personalities(db, tenant.id)
    return success_response(request=request, data=[_to_response(item) for item in items])


@router.get("/{personality_id}", response_model=SuccessEnvelope[PersonalityResponse] | PersonalityResponse)
async def get_personality(
    personality_id: str,
    request: Request,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
) -> dict:
    personality = await personality_service.get_personality(db, tenant.id, personality_id)
    return success_response(request=request, data=_to_response(personality))


@router.post(
    "",
    status_code=201,
    response_model=SuccessEnvelope[PersonalityResponse] | PersonalityResponse,
)
async def create_personality(
    request: Request,
    payload: PersonalityCreateRequest,
    tenant: Tenant = Depends(get_current_tenant),
    _principal: Principal = Depends(require_role("ADMIN")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    personality = await personality_service.create_personality(db, tenant.id, _fields(payload))
    return success_response(request=request, data=_to_response(personality))


@router.put("/{personality_id}", response_model=SuccessEnvelope[PersonalityResponse] | PersonalityResponse)
async def update_personality(
    personality_id: str,
    request: Request,
    payload: PersonalityUpdateRequest,
    tenant: Tenant = Depends(get_current_tenant),
    _principal: Principal = Depends(require_role("ADMIN")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    personality = await personality_service.update_personality(db, tenant.id, personality_id, _fields(payload))
    return success_response(request=request, data=_to_response(personality))


@router.delete("/{personality_id}", status_code=204)
async def delete_personality(
    personality_id: str,
    tenant: Tenant = Depends(get_current_tenant),
    _principal: Principal = Depends(require_role("ADMIN")),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await personality_service.delete_personality(db, tenant.id, personality_id)
    return Response(status_code=204)
