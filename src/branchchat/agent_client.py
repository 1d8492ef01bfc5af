"""HTTP client for an OpenAI-compatible chat completion server."""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

import requests
from requests import Response
from requests.exceptions import ConnectionError, RequestException, Timeout

from branchchat.errors import ApiError
from branchchat.prompts import (
    CHAT_SYSTEM_PROMPT,
    CONDENSE_SYSTEM_PROMPT,
    CONVERSATION_NAME_PROMPT,
    build_branch_name_prompt,
)

LOGGER = logging.getLogger(__name__)


class ChatClient:
    """Completion, naming and outline requests over ``/v1/chat/completions``."""

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        timeout: int = 30,
        max_retries: int = 3,
        model: Optional[str] = None,
        temperature: float = 0.7,
        name_max_tokens: int = 20,
        condense_max_tokens: int = 1200,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.model = model
        self.temperature = temperature
        self.name_max_tokens = name_max_tokens
        self.condense_max_tokens = condense_max_tokens
        self._session = session or requests.Session()

    def complete(self, messages: List[Dict[str, str]], max_tokens: int = 1000) -> str:
        """Return the assistant reply for a role-tagged transcript."""
        if not messages:
            raise ApiError("At least one message is required")
        for index, message in enumerate(messages):
            if message.get("role") not in ("user", "assistant"):
                raise ApiError(f"Invalid role {message.get('role')!r} at index {index}")
            if not message.get("content"):
                raise ApiError(f"Message content is required at index {index}")

        payload = [{"role": "system", "content": CHAT_SYSTEM_PROMPT}]
        payload.extend({"role": m["role"], "content": m["content"].strip()} for m in messages)
        return self._chat(payload, max_tokens=max_tokens, temperature=self.temperature)

    def summarize_branch_name(
        self,
        last_user_message: str,
        last_assistant_message: str,
        selected_text: Optional[str] = None,
    ) -> str:
        prompt = build_branch_name_prompt(
            last_user_message, last_assistant_message, selected_text
        )
        return self._chat(
            [{"role": "user", "content": prompt}],
            max_tokens=self.name_max_tokens,
            temperature=0.3,
        )

    def summarize_conversation_name(self, context: str) -> str:
        prompt = CONVERSATION_NAME_PROMPT.format(context=context)
        return self._chat(
            [{"role": "user", "content": prompt}],
            max_tokens=self.name_max_tokens,
            temperature=0.3,
        )

    def condense_outline(self, transcript: str) -> str:
        """Ask for a JSON outline of a ``[SENDER id]``-tagged transcript."""
        return self._chat(
            [
                {"role": "system", "content": CONDENSE_SYSTEM_PROMPT},
                {"role": "user", "content": transcript},
            ],
            max_tokens=self.condense_max_tokens,
            temperature=0.2,
        )

    def health_check(self) -> bool:
        """Return True if the server responds with HTTP 200."""

        try:
            resp = self._session.get(f"{self.base_url}/health", timeout=5)
            return resp.ok
        except RequestException:
            return False

    def _chat(self, messages: List[Dict[str, str]], max_tokens: int, temperature: float) -> str:
        body: Dict[str, object] = {
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if self.model:
            body["model"] = self.model

        data = self._request_with_retry("POST", "/v1/chat/completions", json=body)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ApiError(f"Malformed response: {exc}")
        if not isinstance(content, str):
            raise ApiError("Invalid response format from API")
        return content

    def _request_with_retry(self, method: str, endpoint: str, **kwargs) -> Dict:
        url = f"{self.base_url}{endpoint}"

        for attempt in range(self.max_retries):
            try:
                response: Response = self._session.request(
                    method,
                    url,
                    timeout=self.timeout,
                    **kwargs,
                )
                if response.status_code >= 500:
                    if attempt < self.max_retries - 1:
                        LOGGER.debug("Server error %s, retrying", response.status_code)
                        time.sleep(2 ** attempt)
                        continue
                    raise ApiError(f"Server error: {response.text}", response.status_code)
                if response.status_code >= 400:
                    raise ApiError(
                        f"Request error ({response.status_code}): {response.text}",
                        response.status_code,
                    )

                response.raise_for_status()
                return response.json()
            except Timeout:
                if attempt < self.max_retries - 1:
                    time.sleep(2 ** attempt)
                    continue
                raise ApiError("Request timed out")
            except ConnectionError:
                raise ApiError(f"Cannot connect to {self.base_url}")
            except ValueError as exc:
                raise ApiError(f"Response was not JSON: {exc}")
            except RequestException as exc:
                if attempt < self.max_retries - 1:
                    time.sleep(2 ** attempt)
                    continue
                raise ApiError(f"Request failed: {exc}")

        raise ApiError("Exceeded retry budget")
