"""
Gemini API client — thin wrapper over the ``generateContent`` endpoint.

One call sends a system instruction plus a user prompt and returns the
text of the first candidate.  Transport errors and 429/5xx answers are
retried with exponential backoff by urllib3's ``Retry``.

Configuration is read from Flask ``current_app.config``:
    - ``GEMINI_API_KEY``:      API key sent as the ``key`` query parameter.
    - ``GEMINI_API_BASE_URL``: e.g. ``https://generativelanguage.googleapis.com/v1beta``
    - ``GEMINI_MODEL``:        e.g. ``gemini-2.5-flash``
    - ``GEMINI_TIMEOUT`` / ``GEMINI_MAX_RETRIES``
"""

import json
import logging
from typing import Any

import urllib3
from flask import current_app
from urllib3.util import Retry, Timeout

logger = logging.getLogger(__name__)


class GeminiApiError(Exception):
    """Raised when the Gemini API cannot produce a usable answer."""


class GeminiApiClient:
    """
    Client for the Gemini REST API.

    Usage inside a Flask request or app context::

        client = GeminiApiClient()
        text = client.generate("You are a helpful advisor.", "How do I ...?")
    """

    def __init__(self) -> None:
        """
        Initialize the client by reading config from Flask app context.

        Raises:
            GeminiApiError: If no API key is configured.
        """
        self.api_key: str = current_app.config.get("GEMINI_API_KEY", "")
        if not self.api_key:
            raise GeminiApiError("GEMINI_API_KEY is not configured")
        self.base_url: str = current_app.config["GEMINI_API_BASE_URL"].rstrip("/")
        self.model: str = current_app.config["GEMINI_MODEL"]
        self.timeout = Timeout(total=current_app.config.get("GEMINI_TIMEOUT", 60))
        self.retries = Retry(
            total=current_app.config.get("GEMINI_MAX_RETRIES", 2),
            backoff_factor=1.0,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"POST"}),
            raise_on_status=False,
        )

    # =================================================================
    # Public API
    # =================================================================

    def generate(self, system_instruction: str, prompt: str) -> str:
        """
        Ask the model for a completion.

        Args:
            system_instruction: Role and rules for the model.
            prompt:             The user-facing request.

        Returns:
            The concatenated text parts of the first candidate.

        Raises:
            GeminiApiError: On transport failure, a non-200 status or an
                            empty answer.
        """
        body = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        }
        payload = self._make_request(f"models/{self.model}:generateContent", body)
        return self._extract_text(payload)

    # =================================================================
    # Internals
    # =================================================================

    def _make_request(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST ``body`` as JSON and return the decoded response."""
        url = f"{self.base_url}/{endpoint}?key={self.api_key}"
        try:
            with urllib3.PoolManager(retries=self.retries, timeout=self.timeout) as http:
                response = http.request(
                    "POST",
                    url,
                    body=json.dumps(body).encode("utf-8"),
                    headers={"Content-Type": "application/json"},
                )
        except urllib3.exceptions.HTTPError as exc:
            logger.error("Gemini request to %s failed: %s", endpoint, exc)
            raise GeminiApiError(f"Gemini request failed: {exc}") from exc

        if response.status != 200:
            logger.error(
                "Gemini API %s returned status %d: %s",
                endpoint,
                response.status,
                response.data[:500],
            )
            raise GeminiApiError(f"Gemini API returned status {response.status}")

        try:
            return json.loads(response.data)
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from Gemini %s: %s", endpoint, exc)
            raise GeminiApiError("Invalid JSON from Gemini API") from exc

    @staticmethod
    def _extract_text(payload: dict[str, Any]) -> str:
        candidates = payload.get("candidates") or []
        if not candidates:
            raise GeminiApiError("Gemini API returned no candidates")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts).strip()
        if not text:
            raise GeminiApiError("Gemini API returned an empty answer")
        return text
