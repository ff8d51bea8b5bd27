"""
Gemini client using direct REST API calls.
Handles API calls with retries and structured output.
"""
import json
from typing import Any, Dict, Optional

import requests
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from core.config import get_settings
from core.exceptions import (
    ClassificationError,
    ClassificationTimeout,
    ConfigurationError,
    ResponseParseError,
)
from core.logger import setup_logger

logger = setup_logger(__name__)

# Gateway statuses worth another attempt (rate limit, overload)
TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


def is_transient_error(exc: BaseException) -> bool:
    """Retry only transport failures; bad payloads are never retried."""
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    if isinstance(exc, requests.exceptions.HTTPError):
        status = getattr(exc.response, "status_code", None)
        return status in TRANSIENT_STATUS_CODES
    return False


def strip_code_fences(content: str) -> str:
    """Remove a surrounding ```json ... ``` block if the model added one."""
    content_stripped = content.strip()
    if content_stripped.startswith("```"):
        lines = content_stripped.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        content_stripped = "\n".join(lines).strip()
    return content_stripped


def extract_candidate_text(completion_data: Dict[str, Any]) -> Optional[str]:
    """
    Pull the generated text out of a generateContent response.

    Args:
        completion_data: Decoded response body

    Returns:
        Concatenated text parts of the first candidate, None if absent
    """
    candidates = completion_data.get("candidates") or []
    if not candidates:
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    texts = [part.get("text") for part in parts if isinstance(part.get("text"), str)]
    if not texts:
        return None
    return "".join(texts)


class LLMClientWrapper:
    """Wrapper for the Gemini REST API with retry logic."""

    retry_wait = wait_exponential(multiplier=1, min=2, max=10)

    def __init__(self):
        """Initialize REST API client."""
        settings = get_settings()
        if not settings.gemini_api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY environment variable not set",
                details={"required_key": "GEMINI_API_KEY"}
            )

        self.api_url = settings.gemini_api_url.rstrip("/")
        self.api_key = settings.gemini_api_key
        self.model = settings.gemini_model
        self.timeout = settings.gemini_timeout
        self.max_retries = settings.llm_max_retries

        logger.info(f"Initialized Gemini REST client with model: {self.model}")

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/{self.model}:generateContent"

    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }
        response = requests.post(
            self.endpoint,
            headers=headers,
            data=json.dumps(payload),
            timeout=self.timeout
        )
        response.raise_for_status()
        return response

    def _post_with_retry(self, payload: Dict[str, Any]) -> requests.Response:
        for attempt in Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=self.retry_wait,
            retry=retry_if_exception(is_transient_error),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Retrying Gemini call (attempt {attempt.retry_state.attempt_number}/{self.max_retries})"
                    )
                return self._post(payload)

    def call_with_structured_output(
        self,
        system_prompt: str,
        user_message: str,
        response_schema: Dict[str, Any],
        temperature: float = 0.1,
    ) -> Dict[str, Any]:
        """
        Call Gemini generateContent with a declared JSON response schema.

        Args:
            system_prompt: System instruction
            user_message: User message with statement text
            response_schema: JSON schema for structured output
            temperature: Model temperature (0.0-1.0)

        Returns:
            Parsed JSON response

        Raises:
            ClassificationTimeout: If the gateway does not answer in time
            ClassificationError: If the API call fails after retries
            ResponseParseError: If the answer is not a JSON object
        """
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [
                {"role": "user", "parts": [{"text": user_message}]}
            ],
            "generationConfig": {
                "temperature": temperature,
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            },
        }

        try:
            response = self._post_with_retry(payload)

        except requests.exceptions.Timeout as e:
            logger.error(f"Gemini request timeout after {self.timeout}s: {e}")
            raise ClassificationTimeout(
                f"Classifier request timeout after {self.timeout}s",
                details={"model": self.model, "timeout": self.timeout}
            )

        except requests.exceptions.HTTPError as e:
            logger.error(f"Gemini HTTP error: {e}")
            raise ClassificationError(
                f"Classifier returned HTTP error: {e}",
                details={
                    "model": self.model,
                    "status_code": getattr(e.response, "status_code", None),
                    "response_text": getattr(e.response, "text", None),
                }
            )

        except requests.exceptions.RequestException as e:
            logger.error(f"Gemini request failed: {e}")
            raise ClassificationError(
                f"Failed to connect to classifier: {str(e)}",
                details={"model": self.model, "error": str(e)}
            )

        try:
            completion_data = response.json()
        except ValueError as e:
            logger.error(f"Gemini response body is not JSON: {e}")
            raise ResponseParseError(
                "Classifier response body is not JSON",
                details={"raw_response": response.text[:500]}
            )

        content = extract_candidate_text(completion_data) if isinstance(completion_data, dict) else None
        if not content:
            block_reason = (completion_data.get("promptFeedback") or {}).get("blockReason") \
                if isinstance(completion_data, dict) else None
            logger.error(f"No candidate text in Gemini response (block reason: {block_reason})")
            raise ResponseParseError(
                "Classifier returned no content",
                details={"block_reason": block_reason}
            )

        try:
            result = json.loads(strip_code_fences(content))
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse classifier output as JSON: {e}")
            raise ResponseParseError(
                f"Classifier returned invalid JSON: {e}",
                details={"raw_response": content[:500]}
            )

        if not isinstance(result, dict):
            raise ResponseParseError(
                "Classifier returned JSON that is not an object",
                details={"type": type(result).__name__}
            )

        usage = completion_data.get("usageMetadata")
        if usage:
            logger.debug(
                f"Token usage - Input: {usage.get('promptTokenCount', 'N/A')}, "
                f"Output: {usage.get('candidatesTokenCount', 'N/A')}"
            )

        return result


def create_response_schema() -> Dict[str, Any]:
    """
    Create the canonical response schema for subscription extraction.

    Returns:
        Schema dictionary in the Gemini responseSchema dialect
    """
    return {
        "type": "OBJECT",
        "properties": {
            "totalMonthly": {
                "type": "NUMBER",
                "description": "Total estimated monthly cost of all recurring subscriptions found."
            },
            "totalYearly": {
                "type": "NUMBER",
                "description": "Total estimated yearly cost."
            },
            "subscriptionCount": {
                "type": "INTEGER",
                "description": "Number of subscriptions found."
            },
            "items": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "name": {"type": "STRING", "description": "Name of the service (e.g. Netflix, Spotify)."},
                        "amount": {"type": "NUMBER", "description": "Cost per billing cycle."},
                        "frequency": {
                            "type": "STRING",
                            "enum": ["monthly", "yearly"],
                            "description": "Billing frequency."
                        },
                        "category": {"type": "STRING", "description": "Category (Streaming, Fitness, Software, etc)."},
                        "confidence": {"type": "NUMBER", "description": "Confidence score 0-1."},
                        "recommendation": {
                            "type": "STRING",
                            "nullable": True,
                            "description": "A brief money-saving tip for this specific item if applicable."
                        }
                    },
                    "required": ["name", "amount", "frequency", "category", "confidence"]
                }
            },
            "insights": {
                "type": "ARRAY",
                "items": {"type": "STRING"},
                "description": "General insights about the user's spending habits based on the data."
            }
        },
        "required": ["totalMonthly", "totalYearly", "subscriptionCount", "items", "insights"]
    }


# Singleton client instance
_client: Optional[LLMClientWrapper] = None


def get_client() -> LLMClientWrapper:
    """
    Get or create LLM client singleton.

    Returns:
        LLM client wrapper instance
    """
    global _client
    if _client is None:
        _client = LLMClientWrapper()
    return _client


def reset_client() -> None:
    """Drop the cached client (useful for testing)."""
    global _client
    _client = None
