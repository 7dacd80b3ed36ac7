from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, get_args

from solveur.core.errors import PersonalityError


Tone = Literal["professional", "friendly", "casual", "formal", "enthusiastic"]
Style = Literal["concise", "detailed", "conversational", "technical", "inspirational", "balanced"]
ResponseLength = Literal["short", "medium", "long"]

TONES: tuple[str, ...] = get_args(Tone)
STYLES: tuple[str, ...] = get_args(Style)
RESPONSE_LENGTHS: tuple[str, ...] = get_args(ResponseLength)

DEFAULT_TONE = "professional"
DEFAULT_STYLE = "balanced"
DEFAULT_EXPERTISE: tuple[str, ...] = ("general",)
DEFAULT_RESPONSE_LENGTH = "medium"
DEFAULT_LANGUAGE = "en"

# Ordered (key, text) pairs; rendering order is the stored order.
Entries = tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class PersonalityConfig:
    """Validated prompt-shaping configuration for one tenant personality.

    Philosophy and values are explicit ordered pairs so prompt rendering never
    depends on mapping iteration order.
    """

    tone: str = DEFAULT_TONE
    style: str = DEFAULT_STYLE
    expertise: tuple[str, ...] = DEFAULT_EXPERTISE
    philosophy: Entries = ()
    values: Entries = ()
    brand_voice: str | None = None
    custom_prompt: str | None = None
    response_length: str = DEFAULT_RESPONSE_LENGTH
    language: str = DEFAULT_LANGUAGE
    name: str = "Default"
    context: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        validate_choice("tone", self.tone, TONES)
        validate_choice("style", self.style, STYLES)
        validate_choice("response_length", self.response_length, RESPONSE_LENGTHS)
        if not self.language or not self.language.strip():
            raise PersonalityError("language must be a non-empty language code")


def validate_choice(field_name: str, value: str, allowed: tuple[str, ...]) -> str:
    if value not in allowed:
        raise PersonalityError(
            f"{field_name} must be one of: {', '.join(allowed)}",
            field=field_name,
            value=value,
        )
    return value


def normalize_expertise(items: Iterable[str] | None) -> tuple[str, ...]:
    # Expertise is a set, but keep first-seen order so rendered prompts are stable.
    seen: list[str] = []
    for item in items or ():
        cleaned = str(item).strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return tuple(seen) or DEFAULT_EXPERTISE


def normalize_entries(raw: Any) -> Entries:
    """Coerce stored or submitted philosophy/values into ordered pairs.

    Accepts a list of ``{"key": ..., "value": ...}`` objects, a list of
    two-item sequences, or a mapping (taken in its given order).
    """
    if raw is None:
        return ()
    if isinstance(raw, dict):
        items: Iterable[Any] = raw.items()
    elif isinstance(raw, (list, tuple)):
        items = raw
    else:
        raise PersonalityError("entries must be a list of key/value pairs")
    pairs: list[tuple[str, str]] = []
    seen_keys: set[str] = set()
    for item in items:
        if isinstance(item, dict):
            key, value = item.get("key"), item.get("value")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            key, value = item
        else:
            raise PersonalityError("entries must be a list of key/value pairs")
        if key is None or str(key).strip() == "":
            raise PersonalityError("entry keys must be non-empty")
        key = str(key).strip()
        if key in seen_keys:
            raise PersonalityError(f"duplicate entry key: {key}")
        seen_keys.add(key)
        pairs.append((key, "" if value is None else str(value)))
    return tuple(pairs)


def entries_to_json(entries: Entries) -> list[dict[str, str]]:
    # Persist pairs as a JSON list so order survives any database JSON implementation.
    return [{"key": key, "value": value} for key, value in entries]


@dataclass(frozen=True)
class IndustryTemplate:
    tone: str
    style: str
    expertise: tuple[str, ...]
    philosophy: Entries
    values: Entries
    brand_voice: str


DEFAULT_INDUSTRY = "technology"

INDUSTRY_TEMPLATES: dict[str, IndustryTemplate] = {
    "technology": IndustryTemplate(
        tone="enthusiastic",
        style="technical",
        expertise=("technical", "strategic", "innovative"),
        philosophy=(
            ("innovation", "We believe in pushing technological boundaries and creating solutions that transform industries."),
            ("userCentric", "Technology should serve human needs and enhance human capabilities."),
            ("continuousLearning", "We embrace rapid iteration and continuous improvement."),
        ),
        values=(
            ("innovation", "Pioneering new solutions"),
            ("excellence", "Technical excellence and quality"),
            ("collaboration", "Cross-functional teamwork"),
            ("impact", "Creating meaningful change"),
        ),
        brand_voice=(
            "We are a technology company that believes in the power of innovation to solve "
            "complex problems and create positive impact."
        ),
    ),
    "healthcare": IndustryTemplate(
        tone="professional",
        style="detailed",
        expertise=("technical", "customer-support", "strategic"),
        philosophy=(
            ("patientFirst", "Every decision we make prioritizes patient safety and well-being."),
            ("evidenceBased", "We rely on scientific evidence and clinical best practices."),
            ("compassionate", "We approach healthcare with empathy and understanding."),
        ),
        values=(
            ("safety", "Patient safety above all"),
            ("quality", "Clinical excellence"),
            ("compassion", "Empathetic care"),
            ("integrity", "Ethical practices"),
        ),
        brand_voice=(
            "We are a healthcare company committed to improving patient outcomes through "
            "innovative, evidence-based solutions."
        ),
    ),
    "finance": IndustryTemplate(
        tone="formal",
        style="concise",
        expertise=("strategic", "technical", "customer-support"),
        philosophy=(
            ("trust", "Trust is the foundation of all financial relationships."),
            ("transparency", "Clear, honest communication builds lasting partnerships."),
            ("security", "Protecting client assets and data is paramount."),
        ),
        values=(
            ("trust", "Building lasting relationships"),
            ("security", "Protecting client assets"),
            ("transparency", "Clear communication"),
            ("excellence", "Financial expertise"),
        ),
        brand_voice=(
            "We are a financial services company that prioritizes trust, security, and "
            "transparent communication in all client relationships."
        ),
    ),
    "education": IndustryTemplate(
        tone="friendly",
        style="conversational",
        expertise=("customer-support", "strategic", "creative"),
        philosophy=(
            ("lifelongLearning", "Education is a journey that never ends."),
            ("accessibility", "Knowledge should be available to everyone."),
            ("empowerment", "Education empowers individuals to reach their potential."),
        ),
        values=(
            ("learning", "Continuous growth"),
            ("accessibility", "Inclusive education"),
            ("empowerment", "Student success"),
            ("innovation", "Modern learning methods"),
        ),
        brand_voice=(
            "We are an education company dedicated to making learning accessible, engaging, "
            "and empowering for all students."
        ),
    ),
    "retail": IndustryTemplate(
        tone="friendly",
        style="conversational",
        expertise=("customer-support", "sales", "creative"),
        philosophy=(
            ("customerCentric", "The customer is at the heart of everything we do."),
            ("experience", "We create memorable shopping experiences."),
            ("convenience", "We make shopping easy and enjoyable."),
        ),
        values=(
            ("service", "Exceptional customer service"),
            ("quality", "Premium products"),
            ("convenience", "Easy shopping experience"),
            ("innovation", "Modern retail solutions"),
        ),
        brand_voice=(
            "We are a retail company focused on creating exceptional customer experiences "
            "through quality products and outstanding service."
        ),
    ),
    "consulting": IndustryTemplate(
        tone="professional",
        style="detailed",
        expertise=("strategic", "technical", "customer-support"),
        philosophy=(
            ("expertise", "Deep knowledge and experience drive successful outcomes."),
            ("partnership", "We work as trusted partners with our clients."),
            ("results", "We deliver measurable, lasting results."),
        ),
        values=(
            ("expertise", "Deep knowledge"),
            ("partnership", "Trusted collaboration"),
            ("results", "Measurable outcomes"),
            ("integrity", "Ethical consulting"),
        ),
        brand_voice=(
            "We are a consulting firm that partners with clients to deliver strategic "
            "solutions and measurable results through deep expertise."
        ),
    ),
}


def industry_template(industry: str | None) -> tuple[str, IndustryTemplate]:
    # Unknown industries fall back to the technology template.
    key = (industry or "").strip().lower()
    if key not in INDUSTRY_TEMPLATES:
        key = DEFAULT_INDUSTRY
    return key, INDUSTRY_TEMPLATES[key]
