"""
Provider backed by a local Ollama server.

:class:`OllamaClient` wraps the Ollama REST API (``/api/generate`` for
completions, ``/api/tags`` for the installed models). HTTP errors,
timeouts and unexpected payloads are raised as :class:`ProviderError`.
:class:`OllamaProvider` builds the review prompts and parses the replies.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from graft.cancellation import CancellationToken
from graft.provider.base import (
    ModelLister,
    OrderRequest,
    Provider,
    ProviderError,
    ReviewRequest,
    SummarizeRequest,
)
from graft.provider.models import ModelInfo, OrderResponse, ReviewResponse, SummarizeResponse
from graft.provider.prompts import (
    build_order_prompt,
    build_review_prompt,
    build_summary_prompt,
    parse_json_response,
    strip_thinking_tags,
)


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


DEFAULT_MODEL = "llama3"


@dataclass
class OllamaClient:
    """Client for interacting with an Ollama server.

    Parameters
    ----------
    base_url : str
        Base URL of the Ollama server, e.g. ``"http://localhost"``.
    port : int
        Port number of the Ollama server, e.g. ``11434``.
    model : str
        Name of the model to use for generation, e.g. ``"llama3"``.
    request_timeout : float, optional
        Timeout in seconds for HTTP requests. Defaults to 120 seconds.
    max_tokens : int, optional
        Maximum number of tokens to generate, passed as ``num_predict``.
    """

    base_url: str
    port: int
    model: str
    request_timeout: float = 120.0
    max_tokens: Optional[int] = None

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}:{self.port}{path}"

    def _timeout(self, cancel: CancellationToken) -> float:
        cancel.raise_if_cancelled()
        timeout = cancel.clamp(self.request_timeout)
        return timeout if timeout is not None else self.request_timeout

    def generate(self, prompt: str, cancel: CancellationToken, max_tokens: Optional[int] = None) -> str:
        """Generate a completion from the model.

        Raises
        ------
        ProviderError
            If the request fails or the server returns an error.
        ReviewCancelled
            If ``cancel`` fires before or during the request.
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
        }
        limit = max_tokens if max_tokens is not None else self.max_tokens
        if limit is not None:
            payload["options"] = {"num_predict": limit}

        url = self._url("/api/generate")
        logger.debug("Sending request to Ollama at %s (model=%s, %d prompt chars)", url, self.model, len(prompt))
        try:
            response = requests.post(url, json=payload, timeout=self._timeout(cancel))
        except requests.RequestException as exc:
            cancel.raise_if_cancelled()
            logger.error("Failed to connect to Ollama: %s", exc)
            raise ProviderError(f"ollama request failed: {exc}") from exc
        cancel.raise_if_cancelled()

        if response.status_code != 200:
            logger.error("Ollama returned non-200 status %s: %s", response.status_code, response.text)
            raise ProviderError(f"ollama returned status {response.status_code}: {response.text}")
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse Ollama response: %s", exc)
            raise ProviderError("failed to parse ollama response") from exc

        # /api/generate answers in 'response'; /api/chat in 'message.content'
        if isinstance(data, dict) and "response" in data:
            return strip_thinking_tags(str(data.get("response") or ""))
        if isinstance(data, dict) and isinstance(data.get("message"), dict):
            return strip_thinking_tags(str(data["message"].get("content") or ""))
        raise ProviderError("unexpected response structure from ollama")

    def list_models(self, cancel: CancellationToken) -> List[ModelInfo]:
        url = self._url("/api/tags")
        try:
            response = requests.get(url, timeout=self._timeout(cancel))
        except requests.RequestException as exc:
            cancel.raise_if_cancelled()
            raise ProviderError(f"ollama request failed: {exc}") from exc
        if response.status_code != 200:
            raise ProviderError(f"ollama returned status {response.status_code}: {response.text}")
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise ProviderError("failed to parse ollama model list") from exc

        models = []
        for entry in data.get("models", []) if isinstance(data, dict) else []:
            if isinstance(entry, dict) and entry.get("name"):
                details = entry.get("details") or {}
                size = details.get("parameter_size", "") if isinstance(details, dict) else ""
                models.append(ModelInfo(id=entry["name"], name=entry["name"], description=size))
        return models


class OllamaProvider(Provider, ModelLister):
    """Review provider using a local Ollama model."""

    name = "ollama"

    def __init__(self, client: OllamaClient) -> None:
        self.client = client

    @property
    def model(self) -> str:
        return self.client.model

    def set_model(self, model: str) -> None:
        self.client.model = model

    def model_lister(self) -> Optional[ModelLister]:
        return self

    def list_models(self, cancel: CancellationToken) -> List[ModelInfo]:
        return self.client.list_models(cancel)

    def summarize_changes(self, request: SummarizeRequest, cancel: CancellationToken) -> SummarizeResponse:
        text = self.client.generate(build_summary_prompt(request), cancel, max_tokens=request.options.max_tokens)
        return parse_json_response(text, SummarizeResponse.from_dict)

    def order_files(self, request: OrderRequest, cancel: CancellationToken) -> OrderResponse:
        text = self.client.generate(build_order_prompt(request), cancel)
        return parse_json_response(text, OrderResponse.from_dict)

    def review_changes(self, request: ReviewRequest, cancel: CancellationToken) -> ReviewResponse:
        text = self.client.generate(build_review_prompt(request), cancel, max_tokens=request.max_tokens)
        if not text:
            raise ProviderError("empty review from ollama")
        return ReviewResponse(content=text)
