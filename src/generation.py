import logging
from dataclasses import dataclass, field
from typing import Callable

from ai_models import ALLOWED_MODELS, OPENAI_MODELS, ensure_allowed
from errors import UpstreamError, ValidationError
from llm_providers import ProviderRegistry
from prompts import PERSONA_LABELS, build_system_prompt, build_user_content
from text_processing import format_long_form, format_summary, format_translation

logger = logging.getLogger(__name__)

MAX_INPUT_LENGTH = 50_000  # characters
TRANSLATION_FALLBACK_MODEL = "gpt-3.5-turbo"


@dataclass(frozen=True)
class ModeSettings:
    allowed_models: tuple
    default_model: str
    max_tokens: int
    temperature: float
    response_key: str
    formatter: Callable[[str], str]


MODES = {
    "summarize": ModeSettings(
        allowed_models=ALLOWED_MODELS,
        default_model="gpt-3.5-turbo",
        max_tokens=500,
        temperature=0.7,
        response_key="summary",
        formatter=format_summary,
    ),
    "blog": ModeSettings(
        allowed_models=OPENAI_MODELS,
        default_model="gpt-4",
        max_tokens=3000,
        temperature=0.7,
        response_key="blog",
        formatter=format_long_form,
    ),
    "script": ModeSettings(
        allowed_models=OPENAI_MODELS,
        default_model="gpt-4",
        max_tokens=4000,
        temperature=0.7,
        response_key="script",
        formatter=format_long_form,
    ),
    "translate": ModeSettings(
        allowed_models=ALLOWED_MODELS,
        default_model="claude-3-5-sonnet",
        max_tokens=4000,
        temperature=0.3,
        response_key="translatedText",
        formatter=format_translation,
    ),
}


@dataclass
class GenerationRequest:
    text: str
    model: str
    prompt: str | None = None
    persona: dict = field(default_factory=dict)


def validate_text(text) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("テキストが指定されていません。")
    if len(text) > MAX_INPUT_LENGTH:
        raise ValidationError(
            f"テキストが長すぎます。{MAX_INPUT_LENGTH:,}文字以内にしてください。"
        )
    return text


def validate_persona(persona) -> dict:
    if persona is None:
        return {}
    if not isinstance(persona, dict):
        raise ValidationError("ペルソナの形式が正しくありません。")
    for key in PERSONA_LABELS:
        value = persona.get(key)
        if value is not None and not isinstance(value, str):
            raise ValidationError("ペルソナの形式が正しくありません。")
    return {key: persona[key] for key in PERSONA_LABELS if persona.get(key)}


def validate_generation_request(mode: str, payload) -> GenerationRequest:
    """Check a route payload before any vendor SDK is touched."""
    settings = MODES[mode]
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    if mode == "translate" and (
        payload.get("prompt") is not None or payload.get("persona") is not None
    ):
        # Translation always uses its fixed instruction
        raise ValidationError("翻訳ではプロンプトとペルソナは指定できません。")

    text = validate_text(payload.get("text"))
    model = ensure_allowed(
        payload.get("model") or settings.default_model, settings.allowed_models
    )

    prompt = payload.get("prompt")
    if prompt is not None and not isinstance(prompt, str):
        raise ValidationError("プロンプトの形式が正しくありません。")

    return GenerationRequest(
        text=text,
        model=model,
        prompt=prompt,
        persona=validate_persona(payload.get("persona")),
    )


async def generate(
    mode: str, request: GenerationRequest, registry: ProviderRegistry
) -> str:
    settings = MODES[mode]
    system_prompt = build_system_prompt(mode, request.prompt, request.persona)
    response = await registry.generate(
        request.model,
        system_prompt,
        build_user_content(mode, request.text),
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
    )
    return settings.formatter(response)


async def translate_to_japanese(
    text: str, model: str, registry: ProviderRegistry
) -> str:
    """
    Translate text to Japanese, falling back to TRANSLATION_FALLBACK_MODEL
    at most once when the requested model fails.
    """
    request = GenerationRequest(text=text, model=model)
    try:
        return await generate("translate", request, registry)
    except UpstreamError as e:
        if model == TRANSLATION_FALLBACK_MODEL:
            raise
        logger.warning(
            f"Translation with {model} failed ({e}), retrying once with {TRANSLATION_FALLBACK_MODEL}"
        )

    request.model = TRANSLATION_FALLBACK_MODEL
    return await generate("translate", request, registry)
