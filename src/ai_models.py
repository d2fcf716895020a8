from enum import Enum

from errors import ValidationError


class Provider(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    CLAUDE = "claude"


# Model ids accepted from clients
ALLOWED_MODELS = (
    "gpt-3.5-turbo",
    "gpt-4",
    "gpt-4-turbo",
    "gemini-1.5-pro",
    "claude-3-opus",
    "claude-3-5-sonnet",
)

OPENAI_MODELS = ("gpt-3.5-turbo", "gpt-4", "gpt-4-turbo")

# Client-facing id -> model string the vendor API expects
MODEL_MAPPING = {
    "gpt-3.5-turbo": "gpt-3.5-turbo",
    "gpt-4": "gpt-4",
    "gpt-4-turbo": "gpt-4-turbo",
    "gemini-1.5-pro": "gemini-1.5-pro-latest",
    "claude-3-opus": "claude-3-opus-20240229",
    "claude-3-5-sonnet": "claude-3-5-sonnet-20241022",
}

AI_MODELS = [
    {"id": "gpt-3.5-turbo", "name": "GPT-3.5 Turbo", "description": "高速で経済的"},
    {"id": "gpt-4", "name": "GPT-4", "description": "高精度で詳細な分析が可能"},
    {"id": "gpt-4-turbo", "name": "GPT-4 Turbo", "description": "最新のGPT-4モデル"},
    {
        "id": "gemini-1.5-pro",
        "name": "Gemini 1.5 Pro",
        "description": "Googleの最新AI、高速で正確",
    },
    {
        "id": "claude-3-opus",
        "name": "Claude 3 Opus",
        "description": "最高精度のAI、複雑な分析が得意",
    },
    {
        "id": "claude-3-5-sonnet",
        "name": "Claude 3.5 Sonnet",
        "description": "高速で経済的なClaude",
    },
]

_PREFIXES = {
    "gpt": Provider.OPENAI,
    "gemini": Provider.GEMINI,
    "claude": Provider.CLAUDE,
}


def provider_for_model(model_id: str) -> Provider:
    """Resolve which vendor serves a model id."""
    for prefix, provider in _PREFIXES.items():
        if model_id.startswith(prefix):
            return provider
    raise ValidationError(f"Unsupported model: {model_id}")


def get_actual_model_name(model_id: str) -> str:
    return MODEL_MAPPING.get(model_id, model_id)


def ensure_allowed(model_id, allowed=ALLOWED_MODELS) -> str:
    if not isinstance(model_id, str) or model_id not in allowed:
        raise ValidationError("無効なAIモデルが指定されました。")
    return model_id


def list_models() -> list[dict]:
    """Display metadata for the model selector, tagged with the vendor."""
    return [
        {**model, "provider": provider_for_model(model["id"]).value}
        for model in AI_MODELS
    ]
