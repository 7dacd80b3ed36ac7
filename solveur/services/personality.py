from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from solveur.core.errors import PersonalityError, PersonalityNotFound
from solveur.domain.models import Personality
from solveur.domain.personality import (
    DEFAULT_LANGUAGE,
    DEFAULT_RESPONSE_LENGTH,
    PersonalityConfig,
    entries_to_json,
    industry_template,
    normalize_entries,
    normalize_expertise,
)
from solveur.persistence.repos import personalities as personalities_repo


logger = logging.getLogger(__name__)

_INSTRUCTIONS = (
    "- Use the provided context to answer questions accurately and helpfully",
    "- Maintain the specified tone and style in your responses",
    "- If the context doesn't contain relevant information, say so politely and offer to help in other ways",
)

# Fields a caller may set; anything else in a payload is ignored.
_EDITABLE_FIELDS = (
    "name",
    "description",
    "tone",
    "style",
    "expertise",
    "philosophy",
    "values",
    "brand_voice",
    "custom_prompt",
    "response_length",
    "language",
    "context",
    "is_active",
)


def compile_prompt(
    personality: PersonalityConfig,
    tenant_name: str,
    user_query: str,
    retrieved_context: str,
) -> str:
    """Render the system prompt for one chat turn.

    Pure string composition: the same inputs always produce byte-identical
    output. Philosophy and values render in their stored order. The user query
    is sent to the model as the user turn, so it is not embedded here.
    """
    _ = user_query
    lines: list[str] = [
        f"You are Solveur, an AI business assistant for {tenant_name}.",
        "",
        "PERSONALITY:",
        f"- Tone: {personality.tone}",
        f"- Style: {personality.style}",
        f"- Expertise: {', '.join(personality.expertise)}",
        "",
        "PHILOSOPHICAL FOUNDATIONS:",
        *(f"{key}: {value}" for key, value in personality.philosophy),
        "",
        "CORE VALUES:",
        *(f"{key}: {value}" for key, value in personality.values),
        "",
        "BRAND VOICE:",
        personality.brand_voice
        or f"{tenant_name} is committed to excellence and customer satisfaction.",
        "",
        "INSTRUCTIONS:",
        *_INSTRUCTIONS,
        f"- Keep responses {personality.response_length} in length",
        f"- Respond in {personality.language}",
        "",
    ]
    if personality.custom_prompt and personality.custom_prompt.strip():
        lines.extend([f"ADDITIONAL INSTRUCTIONS: {personality.custom_prompt}", ""])
    lines.append(f"Context: {retrieved_context}")
    return "\n".join(lines)


def config_from_model(personality: Personality) -> PersonalityConfig:
    return PersonalityConfig(
        name=personality.name,
        tone=personality.tone,
        style=personality.style,
        expertise=normalize_expertise(personality.expertise_json),
        philosophy=normalize_entries(personality.philosophy_json),
        values=normalize_entries(personality.values_json),
        brand_voice=personality.brand_voice,
        custom_prompt=personality.custom_prompt,
        response_length=personality.response_length,
        language=personality.language,
        context=dict(personality.context_json or {}),
    )


def default_config() -> PersonalityConfig:
    # Used when a tenant has no active personality yet.
    return PersonalityConfig()


def industry_personality(company_name: str, industry: str | None) -> dict[str, Any]:
    """Starter personality fields for a newly onboarded tenant.

    Unknown industries get the technology template; the template's brand voice
    is rewritten to speak about the company by name.
    """
    key, template = industry_template(industry)
    brand_voice = template.brand_voice.replace("We are a", f"{company_name} is a")
    return {
        "name": f"{key.capitalize()} Professional",
        "description": f"Default {key} personality for {company_name}",
        "tone": template.tone,
        "style": template.style,
        "expertise": list(template.expertise),
        "philosophy": list(template.philosophy),
        "values": list(template.values),
        "brand_voice": brand_voice,
        "response_length": DEFAULT_RESPONSE_LENGTH,
        "language": DEFAULT_LANGUAGE,
        "context": {"industry": key, "companyName": company_name, "defaultIndustry": True},
        "is_active": True,
    }


def _validated(fields: dict[str, Any], base: PersonalityConfig | None = None) -> PersonalityConfig:
    # Build the merged config once so every write goes through the same vocabulary checks.
    base = base or PersonalityConfig()
    return PersonalityConfig(
        name=fields.get("name", base.name),
        tone=fields.get("tone") or base.tone,
        style=fields.get("style") or base.style,
        expertise=normalize_expertise(fields["expertise"]) if "expertise" in fields else base.expertise,
        philosophy=normalize_entries(fields["philosophy"]) if "philosophy" in fields else base.philosophy,
        values=normalize_entries(fields["values"]) if "values" in fields else base.values,
        brand_voice=fields.get("brand_voice", base.brand_voice),
        custom_prompt=fields.get("custom_prompt", base.custom_prompt),
        response_length=fields.get("response_length") or base.response_length,
        language=fields.get("language") or base.language,
        context=fields.get("context", base.context) or {},
    )


def _apply(personality: Personality, config: PersonalityConfig) -> None:
    personality.name = config.name
    personality.tone = config.tone
    personality.style = config.style
    personality.expertise_json = list(config.expertise)
    personality.philosophy_json = entries_to_json(config.philosophy)
    personality.values_json = entries_to_json(config.values)
    personality.brand_voice = config.brand_voice
    personality.custom_prompt = config.custom_prompt
    personality.response_length = config.response_length
    personality.language = config.language
    personality.context_json = dict(config.context)


async def get_active_config(session: AsyncSession, tenant_id: str) -> PersonalityConfig:
    personality = await personalities_repo.get_active(session, tenant_id)
    if personality is None:
        return default_config()
    return config_from_model(personality)


async def list_personalities(session: AsyncSession, tenant_id: str) -> list[Personality]:
    return await personalities_repo.list_personalities(session, tenant_id)


async def get_personality(session: AsyncSession, tenant_id: str, personality_id: str) -> Personality:
    personality = await personalities_repo.get_personality(session, tenant_id, personality_id)
    if personality is None:
        raise PersonalityNotFound()
    return personality


async def create_personality(
    session: AsyncSession, tenant_id: str, fields: dict[str, Any], *, commit: bool = True
) -> Personality:
    # New personalities are active unless asked otherwise; the first one is always active.
    fields = {key: value for key, value in fields.items() if key in _EDITABLE_FIELDS}
    if not (fields.get("name") or "").strip():
        raise PersonalityError("name is required", field="name")
    config = _validated(fields)
    is_active = fields.get("is_active")
    if is_active is None:
        is_active = True
    if not is_active and await personalities_repo.count_active(session, tenant_id) == 0:
        is_active = True

    personality_id = uuid4().hex
    if is_active:
        await personalities_repo.deactivate_others(session, tenant_id, keep_id=personality_id)
    personality = Personality(
        id=personality_id,
        tenant_id=tenant_id,
        description=fields.get("description"),
        is_active=bool(is_active),
    )
    _apply(personality, config)
    session.add(personality)
    if commit:
        await session.commit()
    logger.info(
        "personality_created tenant_id=%s personality_id=%s active=%s", tenant_id, personality_id, is_active
    )
    return personality


async def update_personality(
    session: AsyncSession, tenant_id: str, personality_id: str, fields: dict[str, Any]
) -> Personality:
    personality = await get_personality(session, tenant_id, personality_id)
    fields = {key: value for key, value in fields.items() if key in _EDITABLE_FIELDS}
    if "name" in fields and not (fields.get("name") or "").strip():
        raise PersonalityError("name cannot be blank", field="name")
    config = _validated(fields, base=config_from_model(personality))

    is_active = fields.get("is_active")
    if is_active is True and not personality.is_active:
        await personalities_repo.deactivate_others(session, tenant_id, keep_id=personality.id)
        personality.is_active = True
    elif is_active is False and personality.is_active:
        # Turning off the last active personality would leave the tenant with none.
        if await personalities_repo.count_active(session, tenant_id) <= 1:
            raise PersonalityError("Cannot deactivate the only active personality")
        personality.is_active = False

    if "description" in fields:
        personality.description = fields["description"]
    _apply(personality, config)
    await session.commit()
    logger.info("personality_updated tenant_id=%s personality_id=%s", tenant_id, personality_id)
    return personality


async def activate_personality(session: AsyncSession, tenant_id: str, personality_id: str) -> Personality:
    return await update_personality(session, tenant_id, personality_id, {"is_active": True})


async def delete_personality(session: AsyncSession, tenant_id: str, personality_id: str) -> None:
    personality = await get_personality(session, tenant_id, personality_id)
    if personality.is_active and await personalities_repo.count_active(session, tenant_id) <= 1:
        raise PersonalityError("Cannot delete the only active personality")
    await session.delete(personality)
    await session.commit()
    logger.info("personality_deleted tenant_id=%s personality_id=%s", tenant_id, personality_id)

