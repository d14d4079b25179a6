# atlas_core/services/llm_client.py

import httpx
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from loguru import logger

from atlas_core.core.config import settings

OpenAIMessage = Dict[str, Any]


# --- Response models (subset of the Chat Completions schema) ---

class LLMError(BaseModel):
    model_config = ConfigDict(extra="allow")
    message: str
    type: Optional[str] = None
    code: Optional[str | int] = None


class LLMResponseMessage(BaseModel):
    model_config = ConfigDict(extra="allow")
    role: str = "assistant"
    content: Optional[str] = None


class LLMResponseChoice(BaseModel):
    model_config = ConfigDict(extra="allow")
    index: int = 0
    message: LLMResponseMessage
    finish_reason: Optional[str] = None


class LLMResponse(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: str = ""
    object: str = "chat.completion"
    created: int = 0
    model: str = ""
    choices: List[LLMResponseChoice] = Field(default_factory=list)
    error: Optional[LLMError] = None

    @property
    def text(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].message.content or ""


def _error_response(model: str, message: str, kind: str) -> LLMResponse:
    return LLMResponse(
        id=f"error-{kind}",
        object="error",
        created=int(datetime.now(timezone.utc).timestamp()),
        model=model,
        error=LLMError(message=message, type=kind),
    )


class OpenAIClient:
    provider_name = "OpenAI"

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None, timeout: float = 60.0):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.api_url = api_url or settings.OPENAI_API_URL
        self.timeout = timeout
        if not self.api_key:
            logger.warning("OpenAI API key not configured. OpenAI features disabled.")
            self.headers = None
        else:
            self.headers = {
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            }
            logger.info(f"OpenAI Client initialized for API Key: ...{self.api_key[-4:]}")

    @property
    def is_configured(self) -> bool:
        return self.headers is not None

    async def get_completion(
        self,
        messages: List[OpenAIMessage],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Calls Chat Completions. Never raises; failures come back in `LLMResponse.error`."""
        model = model or settings.OPENAI_MODEL
        if not self.headers:
            logger.error("OpenAI Client not initialized (missing API key).")
            return _error_response(model, "OpenAI client not initialized.", "no-init")

        payload: Dict[str, Any] = {"model": model, "messages": messages, "temperature": temperature}
        if max_tokens:
            payload["max_tokens"] = max_tokens

        log = logger.bind(service="LLMClient", provider=self.provider_name, model=model)
        log.info("Sending request to OpenAI Chat Completion...")
        if messages:
            log.debug(f"User Prompt Start: '{str(messages[-1].get('content', ''))[:80]}...'")

        request_time = datetime.now(timezone.utc)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.api_url, headers=self.headers, json=payload)
            duration = (datetime.now(timezone.utc) - request_time).total_seconds()
            log.debug(f"OpenAI Response Status: {response.status_code}, Duration: {duration:.3f}s")
            response.raise_for_status()
            response_data = response.json()
        except httpx.HTTPStatusError as http_err:
            log.error(f"HTTP Error {http_err.response.status_code} from OpenAI: {http_err.response.text[:500]}")
            details: Dict[str, Any] = {"message": f"HTTP error {http_err.response.status_code} from OpenAI"}
            try:
                body = http_err.response.json()
            except ValueError:
                body = None
            error_info = body.get("error") if isinstance(body, dict) else None
            if isinstance(error_info, dict):
                details.update({k: v for k, v in error_info.items() if v is not None})
            elif isinstance(error_info, str) and error_info:
                details["message"] = error_info
            try:
                error = LLMError.model_validate(details)
            except ValidationError:
                error = LLMError(message=f"HTTP error {http_err.response.status_code} from OpenAI")
            return LLMResponse(
                id="error-http", object="error", created=int(request_time.timestamp()), model=model, error=error,
            )
        except httpx.TimeoutException:
            log.error(f"Timeout error connecting to OpenAI API after {self.timeout}s.")
            return _error_response(model, "Request to OpenAI API timed out.", "timeout")
        except httpx.RequestError as req_err:
            log.error(f"Network/Request error calling OpenAI: {req_err}")
            return _error_response(model, f"Network/Request error calling OpenAI: {req_err}", "request")
        except ValueError as json_err:
            log.error(f"OpenAI returned a non-JSON body: {json_err}")
            return _error_response(model, "OpenAI returned a non-JSON body.", "decode")

        try:
            llm_response = LLMResponse.model_validate(response_data)
        except Exception as validation_error:
            log.exception(f"Error validating OpenAI response: {validation_error}")
            return _error_response(model, f"Failed to parse OpenAI response: {validation_error}", "validation")

        if not llm_response.choices and not llm_response.error:
            log.warning("OpenAI response OK but missing 'choices' data.")
            llm_response.error = LLMError(message="OpenAI returned no choices.")
        else:
            finish = llm_response.choices[0].finish_reason if llm_response.choices else "N/A"
            log.info(f"OpenAI request successful. Finish Reason: {finish}")
        return llm_response


@lru_cache()
def get_llm_client() -> OpenAIClient:
    return OpenAIClient()
