"""Chat-completions client for the multimodal inference service."""

import logging
from typing import Optional

import requests

from app.analysis.errors import AnalysisError, AnalysisErrorKind
from app.io.image_reader import EncodedImage

logger = logging.getLogger(__name__)


class ChatCompletionClient:
    """Minimal OpenAI-compatible chat completions client.

    Sends a single user message made of an instruction prompt and, when
    given, one inline base64 image. Returns the text content of the first
    choice.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        max_tokens: int = 5000,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.api_url = f"{base_url.rstrip('/')}/chat/completions"
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._session = session or requests.Session()

    def _build_payload(self, prompt: str, image: Optional[EncodedImage]) -> dict:
        if image is None:
            content = prompt
        else:
            content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image.data_url}},
            ]
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": self.max_tokens,
        }

    def complete(self, prompt: str, image: Optional[EncodedImage] = None) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = self._build_payload(prompt, image)

        try:
            response = self._session.post(
                self.api_url, headers=headers, json=payload, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.Timeout as exc:
            raise AnalysisError(
                AnalysisErrorKind.TRANSPORT,
                f"request timed out after {self.timeout:g}s",
            ) from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else "unknown"
            raise AnalysisError(
                AnalysisErrorKind.TRANSPORT, f"service returned HTTP {status}"
            ) from exc
        except requests.RequestException as exc:
            raise AnalysisError(
                AnalysisErrorKind.TRANSPORT, f"service unreachable ({exc})"
            ) from exc

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error("Malformed inference response: %r", response.text[:2000])
            raise AnalysisError(
                AnalysisErrorKind.PARSE_FAILURE, "malformed response envelope"
            ) from exc

        if not isinstance(content, str) or not content.strip():
            raise AnalysisError(AnalysisErrorKind.PARSE_FAILURE, "empty response content")
        return content
