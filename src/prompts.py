import os

PROMPTS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "prompt_templates")
MODES = ("summarize", "blog", "script", "translate")

# Lead-in placed before the transcript in the user message
USER_CONTENT_PREFIXES = {
    "blog": "以下の動画内容からSEO最適化されたブログ記事を生成してください。特に検索意図を意識し、ユーザーが求める情報を網羅的に提供してください：",
    "script": "以下の動画内容を参考に、同じテーマで新しい動画の台本を生成してください。オリジナリティを出しつつ、視聴者により分かりやすい内容を心がけてください：",
}

PERSONA_LABELS = {
    "name": "ペルソナ",
    "targetAudience": "ターゲット層",
    "tone": "トーン",
    "goal": "目的",
}


def read_prompt(filename):
    """Helper function to read a prompt file."""
    filepath = os.path.join(PROMPTS_DIR, f"{filename}.md")
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Prompt file not found: {filepath}")
    with open(filepath, "r", encoding="utf-8") as f:
        return f.read().strip()


prompts = {name: read_prompt(name) for name in MODES}


def build_persona_block(persona: dict | None) -> str:
    lines = [
        f"- {label}: {persona[key].strip()}"
        for key, label in PERSONA_LABELS.items()
        if persona and isinstance(persona.get(key), str) and persona[key].strip()
    ]
    if not lines:
        return ""
    return "# ペルソナ設定\n以下の人物像を前提に出力してください。\n" + "\n".join(lines)


def build_system_prompt(
    mode: str, override: str | None = None, persona: dict | None = None
) -> str:
    """
    Resolve the system prompt for a generation mode.

    A non-blank override replaces the whole default template. Persona fields,
    when given, are prepended as their own instruction block.
    """
    base = override.strip() if override and override.strip() else prompts[mode]
    persona_block = build_persona_block(persona)
    if persona_block:
        return f"{persona_block}\n\n{base}"
    return base


def build_user_content(mode: str, text: str) -> str:
    prefix = USER_CONTENT_PREFIXES.get(mode)
    if prefix:
        return f"{prefix}\n\n{text}"
    return text
