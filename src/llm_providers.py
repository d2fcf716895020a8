import logging
import os
from abc import ABC, abstractmethod

import google.generativeai as genai
from anthropic import AsyncAnthropic
from google.generativeai.types import HarmBlockThreshold, HarmCategory  # For safety settings
from openai import AsyncOpenAI

from ai_models import Provider, get_actual_model_name, provider_for_model
from errors import UpstreamError

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    @abstractmethod
    async def generate_content(
        self,
        prompt: str,
        content: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """
        Generate content based on system prompt and input content.
        Args:
            prompt: System prompt/instructions
            content: Input content to process
            model: Vendor-specific model string
        Returns:
            Generated text from the LLM
        Raises:
            UpstreamError: the call failed or returned no text
        """
        pass


class OpenAIProvider(LLMProvider):
    def __init__(self, api_key: str, base_url: str | None = None) -> None:
        self.llm = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def generate_content(self, prompt, content, *, model, max_tokens, temperature):
        try:
            response = await self.llm.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": prompt},
                    {"role": "user", "content": content},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as e:
            logger.error(f"OpenAI API error ({model}): {e}")
            raise UpstreamError(f"OpenAI API エラー: {e}") from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            logger.error(f"OpenAI API returned an empty response ({model})")
            raise UpstreamError("OpenAI APIからの応答が空です。")
        return text


class GeminiProvider(LLMProvider):
    def __init__(self, api_key: str) -> None:
        genai.configure(api_key=api_key)

        # Relaxed so borderline transcripts do not come back empty
        self.safety_settings = {
            HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_NONE,
            HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_NONE,
            HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_NONE,
            HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE,
        }

    async def generate_content(self, prompt, content, *, model, max_tokens, temperature):
        # No system role here, so the instructions lead the content
        full_prompt = f"{prompt}\n\n{content}"
        try:
            gemini_model = genai.GenerativeModel(model)
            response = await gemini_model.generate_content_async(
                full_prompt,
                generation_config=genai.GenerationConfig(
                    max_output_tokens=max_tokens,
                    temperature=temperature,
                ),
                safety_settings=self.safety_settings,
            )
        except Exception as e:
            logger.error(f"Gemini API error ({model}): {e}")
            raise UpstreamError(f"Gemini API エラー: {e}") from e

        feedback = getattr(response, "prompt_feedback", None)
        if feedback is not None and feedback.block_reason:
            reason = getattr(feedback.block_reason, "name", feedback.block_reason)
            logger.error(f"Gemini prompt blocked. Reason: {reason}")
            raise UpstreamError(f"Gemini API エラー: ブロックされました ({reason})")

        try:
            text = response.text
        except ValueError as e:
            # .text raises when the candidate has no text parts
            logger.error(f"Gemini API returned no text ({model}): {e}")
            raise UpstreamError("Gemini APIからの応答が空です。") from e

        if not text:
            raise UpstreamError("Gemini APIからの応答が空です。")
        return text


class ClaudeProvider(LLMProvider):
    def __init__(self, api_key: str) -> None:
        self.client = AsyncAnthropic(api_key=api_key)

    async def generate_content(self, prompt, content, *, model, max_tokens, temperature):
        try:
            response = await self.client.messages.create(
                model=model,
                max_tokens=max_tokens,
                system=prompt,
                messages=[{"role": "user", "content": content}],
                temperature=temperature,
            )
        except Exception as e:
            logger.error(f"Claude API error ({model}): {e}")
            raise UpstreamError(f"Claude API エラー: {e}") from e

        if not response.content:
            raise UpstreamError("Claude APIからの応答が空です。")

        block = response.content[0]
        if block.type != "text":
            logger.error(f"Claude API returned a non-text block: {block.type}")
            raise UpstreamError("Claude APIからテキスト以外の応答を受け取りました。")
        if not block.text:
            raise UpstreamError("Claude APIからの応答が空です。")
        return block.text


class ProviderRegistry:
    """Strategy table from vendor to configured provider client."""

    def __init__(self, providers: dict[Provider, LLMProvider] | None = None) -> None:
        self.providers = dict(providers or {})

    def is_enabled(self, provider: Provider) -> bool:
        return provider in self.providers

    def get(self, provider: Provider) -> LLMProvider:
        try:
            return self.providers[provider]
        except KeyError:
            raise UpstreamError(
                f"{provider.value} provider is not configured"
            ) from None

    async def generate(
        self,
        model_id: str,
        prompt: str,
        content: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        provider = provider_for_model(model_id)
        actual_model = get_actual_model_name(model_id)
        llm = self.get(provider)

        logger.info(
            f"{provider.value} request started - model: {actual_model}, input length: {len(content)}"
        )
        text = await llm.generate_content(
            prompt,
            content,
            model=actual_model,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        logger.info(f"{provider.value} response received - length: {len(text)}")
        return text


def get_llm_registry() -> ProviderRegistry:
    """Build the registry from the environment, skipping vendors without a key."""
    providers = {}

    openai_key = os.getenv("OPENAI_API_KEY")
    if openai_key:
        providers[Provider.OPENAI] = OpenAIProvider(
            openai_key, base_url=os.getenv("OPENAI_BASE_URL")
        )
    else:
        logger.warning("OPENAI_API_KEY environment variable not set. GPT models are disabled.")

    gemini_key = os.getenv("GEMINI_API_KEY")
    if gemini_key:
        providers[Provider.GEMINI] = GeminiProvider(gemini_key)
    else:
        logger.warning("GEMINI_API_KEY environment variable not set. Gemini models are disabled.")

    claude_key = os.getenv("ANTHROPIC_API_KEY") or os.getenv("CLAUDE_API_KEY")
    if claude_key:
        providers[Provider.CLAUDE] = ClaudeProvider(claude_key)
    else:
        logger.warning("ANTHROPIC_API_KEY environment variable not set. Claude models are disabled.")

    return ProviderRegistry(providers)
