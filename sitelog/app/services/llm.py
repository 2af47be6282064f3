"""
Vision-capable chat completion provider.

Talks to the OpenAI chat completions endpoint (or any compatible endpoint)
with photos inlined as base64 data URLs.
"""

import base64
import logging
import time

import httpx

from sitelog.app.services.images import sniff_mime

logger = logging.getLogger(__name__)

# Response format requesting a single JSON object
JSON_OBJECT_FORMAT = {"type": "json_object"}


def image_data_url(data: bytes) -> str:
    """Inline image bytes as a data URL with a sniffed MIME type."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{sniff_mime(data)};base64,{encoded}"


class OpenAIProvider:
    """OpenAI GPT provider with image inputs."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1/chat/completions",
        timeout: float = 120.0,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Vision-capable model name
            base_url: Chat completions endpoint
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout

    @staticmethod
    def build_user_content(prompt: str, images: list[bytes]) -> str | list[dict]:
        """User message content: plain text, or text plus image parts."""
        if not images:
            return prompt
        content: list[dict] = [{"type": "text", "text": prompt}]
        for data in images:
            content.append({
                "type": "image_url",
                "image_url": {"url": image_data_url(data), "detail": "high"},
            })
        return content

    async def generate(
        self,
        prompt: str,
        images: list[bytes] | None = None,
        system_prompt: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 8192,
        response_format: dict | None = None,
    ) -> str:
        """
        Generate a completion for a prompt and optional photos.

        Args:
            prompt: User prompt
            images: Raw image bytes to attach, in display order
            system_prompt: System instruction
            temperature: Sampling temperature (0-2)
            max_tokens: Maximum tokens to generate
            response_format: Optional response format (e.g. JSON mode)

        Returns:
            Message content of the first choice

        Raises:
            httpx.HTTPStatusError: If the API returns a non-2xx status
            httpx.HTTPError: If the request fails or times out
        """
        images = images or []
        messages = []

        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        messages.append({"role": "user", "content": self.build_user_content(prompt, images)})

        logger.info(f"[LLM REQUEST] Model: {self.model}, Images: {len(images)}, Structured: {response_format is not None}")
        logger.info(f"[LLM REQUEST] User prompt: {prompt[:200]}...")

        start_time = time.time()

        request_body = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if response_format:
            request_body["response_format"] = response_format

        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=request_body,
                timeout=self.timeout,
            )

            response.raise_for_status()
            data = response.json()

            result = (data["choices"][0]["message"]["content"] or "").strip()
            elapsed_time = time.time() - start_time

            logger.info(f"[LLM RESPONSE] Time: {elapsed_time:.2f}s")
            logger.info(f"[LLM RESPONSE] Result: {result[:200]}...")

            return result
