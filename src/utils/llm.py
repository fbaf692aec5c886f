"""LLM client utilities with async support, retry logic and cost estimation."""

import asyncio
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type, TypeVar, Union

import aiohttp
from pydantic import BaseModel, ValidationError as PydanticValidationError

try:
    import google.genai as genai
    from google.genai import types as genai_types
    GEMINI_AVAILABLE = True
except ImportError:
    GEMINI_AVAILABLE = False


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# USD per million tokens
MODEL_COSTS = {
    "claude-sonnet-4.5": 3.0,
    "claude-3.5-sonnet": 3.0,
    "gpt-4": 30.0,
    "gpt-3.5-turbo": 0.5,
}
DEFAULT_COST_PER_MILLION = 3.0


class LLMError(Exception):
    """Base exception for LLM-related errors."""
    pass


class RateLimitError(LLMError):
    """Exception raised when rate limit is exceeded."""
    pass


class ResponseFormatError(LLMError):
    """Exception raised when the LLM response doesn't match the expected schema."""
    pass


class APIError(LLMError):
    """Exception raised for API-specific errors."""
    pass


@dataclass
class LLMRequest:
    """Represents a single LLM request."""
    prompt: str
    response_format: Optional[Type[BaseModel]] = None
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class LLMResponse:
    """Represents a single LLM response."""
    content: str
    parsed_data: Optional[BaseModel] = None
    metadata: Optional[Dict[str, Any]] = None
    latency_ms: Optional[float] = None
    token_usage: Optional[Dict[str, int]] = None
    model: Optional[str] = None


def estimate_cost(total_tokens: int, model: Optional[str] = None) -> float:
    """Estimated USD cost of a call from its total token count."""
    rate = DEFAULT_COST_PER_MILLION
    if model:
        for name, model_rate in MODEL_COSTS.items():
            if model.startswith(name):
                rate = model_rate
                break
    return total_tokens / 1_000_000 * rate


def extract_json(content: str) -> Optional[str]:
    """Extract a JSON object from LLM response content."""
    match = re.search(r'```(?:json)?\s*(\{.*?\})\s*```', content, re.DOTALL)
    if match:
        return match.group(1)

    match = re.search(r'\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}', content, re.DOTALL)
    if match:
        return match.group(0)

    return None


def parse_structured(content: str, response_format: Type[T]) -> Optional[T]:
    """Validate the JSON object found in ``content`` against ``response_format``."""
    json_str = extract_json(content)
    if not json_str:
        return None
    try:
        return response_format.model_validate(json.loads(json_str))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise ResponseFormatError(f"Failed to parse LLM response: {e}")


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    model: str = ""

    @abstractmethod
    async def call_single(self, request: LLMRequest) -> LLMResponse:
        """Make a single LLM call."""
        pass


class ClaudeLLMProvider(LLMProvider):
    """Claude API provider implementation."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5",
        base_url: str = "https://api.anthropic.com/v1/messages",
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 60.0
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

    async def call_single(self, request: LLMRequest) -> LLMResponse:
        """Make a single Claude API call with retry logic."""
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01"
        }

        payload = {
            "model": self.model,
            "max_tokens": request.max_tokens or 4096,
            "temperature": request.temperature,
            "messages": [
                {"role": "user", "content": request.prompt}
            ]
        }

        start_time = time.time()

        for attempt in range(self.max_retries + 1):
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.post(
                        self.base_url,
                        headers=headers,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout)
                    ) as response:

                        if response.status == 429:
                            raise RateLimitError("Rate limit exceeded")
                        elif response.status >= 400:
                            error_text = await response.text()
                            raise APIError(f"API error {response.status}: {error_text}")

                        response_data = await response.json()
                        content = response_data.get("content", [{}])[0].get("text", "")

                        parsed_data = None
                        if request.response_format and content:
                            parsed_data = parse_structured(content, request.response_format)

                        return LLMResponse(
                            content=content,
                            parsed_data=parsed_data,
                            latency_ms=(time.time() - start_time) * 1000,
                            token_usage=response_data.get("usage", {}),
                            model=self.model
                        )

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt == self.max_retries:
                    raise APIError(f"API call failed after {self.max_retries} retries: {e}")
                await asyncio.sleep(self.retry_delay * (2 ** attempt))


class GeminiLLMProvider(LLMProvider):
    """Google Gemini API provider implementation."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 60.0
    ):
        if not GEMINI_AVAILABLE:
            raise ImportError("google-genai package not available. Install with: pip install google-genai")

        self.api_key = api_key
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.client = genai.Client(api_key=api_key)

    async def call_single(self, request: LLMRequest) -> LLMResponse:
        """Make a single Gemini API call with retry logic."""
        start_time = time.time()

        generation_config = {"temperature": request.temperature}
        if request.max_tokens:
            generation_config["max_output_tokens"] = request.max_tokens

        prompt = request.prompt
        if request.response_format:
            schema = request.response_format.model_json_schema()
            prompt += f"\n\nPlease respond with valid JSON that matches this schema:\n```json\n{json.dumps(schema, indent=2)}\n```"

        for attempt in range(self.max_retries + 1):
            try:
                response = await asyncio.wait_for(
                    asyncio.to_thread(
                        self.client.models.generate_content,
                        model=self.model,
                        contents=prompt,
                        config=genai_types.GenerateContentConfig(**generation_config)
                    ),
                    timeout=self.timeout
                )
            except Exception as e:
                error_str = str(e).lower()
                if "rate limit" in error_str or "quota" in error_str:
                    if attempt < self.max_retries:
                        wait_time = self.retry_delay * (2 ** attempt)
                        logger.warning(f"Gemini rate limit hit, waiting {wait_time}s before retry")
                        await asyncio.sleep(wait_time)
                        continue
                    raise RateLimitError("Gemini rate limit exceeded")

                if attempt == self.max_retries:
                    raise APIError(f"Gemini API call failed after {self.max_retries} retries: {e}")
                await asyncio.sleep(self.retry_delay * (2 ** attempt))
                continue

            content = response.text if hasattr(response, "text") else str(response)

            parsed_data = None
            if request.response_format and content:
                parsed_data = parse_structured(content, request.response_format)

            token_usage = {}
            usage = getattr(response, "usage_metadata", None)
            if usage is not None:
                token_usage = {
                    "input_tokens": getattr(usage, "prompt_token_count", 0) or 0,
                    "output_tokens": getattr(usage, "candidates_token_count", 0) or 0,
                }

            return LLMResponse(
                content=content,
                parsed_data=parsed_data,
                latency_ms=(time.time() - start_time) * 1000,
                token_usage=token_usage,
                model=self.model
            )


class LLMClient:
    """High-level client for LLM operations with built-in retry and error handling."""

    def __init__(
        self,
        provider: LLMProvider,
        default_retry_count: int = 3,
        default_retry_delay: float = 1.0,
        rate_limit_delay: float = 2.0
    ):
        self.provider = provider
        self.default_retry_count = default_retry_count
        self.default_retry_delay = default_retry_delay
        self.rate_limit_delay = rate_limit_delay

    @property
    def model(self) -> str:
        return getattr(self.provider, "model", "")

    async def call(
        self,
        prompt: str,
        response_format: Optional[Type[T]] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        retry_count: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Union[LLMResponse, T]:
        """Make a single LLM call with retry logic.

        Returns the parsed model when ``response_format`` is given and the
        response contained a matching JSON object, otherwise the raw response.
        """
        request = LLMRequest(
            prompt=prompt,
            response_format=response_format,
            temperature=temperature,
            max_tokens=max_tokens,
            metadata=metadata or {}
        )

        retry_count = self.default_retry_count if retry_count is None else retry_count

        for attempt in range(retry_count + 1):
            try:
                response = await self.provider.call_single(request)

                logger.info(
                    "LLM call completed",
                    extra={
                        "prompt_length": len(prompt),
                        "response_length": len(response.content),
                        "latency_ms": response.latency_ms,
                        "attempt": attempt + 1,
                        "tokens": response.token_usage,
                        "has_structured_output": response.parsed_data is not None
                    }
                )

                return response.parsed_data if response.parsed_data else response

            except RateLimitError:
                if attempt == retry_count:
                    raise
                logger.warning(f"Rate limit hit, waiting {self.rate_limit_delay}s before retry")
                await asyncio.sleep(self.rate_limit_delay)
            except ResponseFormatError as e:
                if attempt == retry_count:
                    logger.error(f"Validation failed after {retry_count} retries: {e}")
                    raise
                logger.warning(f"Validation error on attempt {attempt + 1}, retrying: {e}")
                await asyncio.sleep(self.default_retry_delay * (attempt + 1))
            except LLMError as e:
                if attempt == retry_count:
                    logger.error(f"LLM call failed after {retry_count} retries: {e}")
                    raise
                logger.warning(f"Error on attempt {attempt + 1}, retrying: {e}")
                await asyncio.sleep(self.default_retry_delay * (attempt + 1))


def create_llm_client(
    provider_type: str = "claude",
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    timeout: float = 60.0
) -> LLMClient:
    """Create an LLM client for the given provider.

    Requires a real API key; there is no mock fallback.
    """
    if not api_key:
        raise ValueError(f"API key required for {provider_type} provider")

    kwargs: Dict[str, Any] = {"max_retries": max_retries, "retry_delay": retry_delay, "timeout": timeout}
    if model:
        kwargs["model"] = model

    if provider_type == "claude":
        provider = ClaudeLLMProvider(api_key=api_key, **kwargs)
    elif provider_type == "gemini":
        provider = GeminiLLMProvider(api_key=api_key, **kwargs)
    else:
        raise ValueError(f"Unknown provider type: {provider_type}. Supported: claude, gemini")

    return LLMClient(provider=provider, default_retry_count=max_retries, default_retry_delay=retry_delay)
