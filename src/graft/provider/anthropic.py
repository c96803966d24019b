"""
Provider backed by Anthropic's Messages API.

Requests are sent with ``requests`` directly; no SDK is required. The API
key comes from the configuration (``anthropic_api_key``) or the
``ANTHROPIC_API_KEY`` environment variable.
"""

from __future__ import annotations

import json
import logging
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
)


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


DEFAULT_MODEL = "claude-sonnet-4-20250514"
API_URL = "https://api.anthropic.com/v1"
API_VERSION = "2023-06-01"


class AnthropicProvider(Provider, ModelLister):
    """Review provider using Claude models."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "",
        request_timeout: float = 120.0,
        base_url: str = API_URL,
    ) -> None:
        if not api_key:
            raise ProviderError("anthropic API key is required")
        self._api_key = api_key
        self._model = model or DEFAULT_MODEL
        self.request_timeout = request_timeout
        self.base_url = base_url.rstrip("/")

    @property
    def model(self) -> str:
        return self._model

    def set_model(self, model: str) -> None:
        self._model = model

    def model_lister(self) -> Optional[ModelLister]:
        return self

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }

    def _request(self, method: str, path: str, cancel: CancellationToken, payload: Optional[Dict[str, Any]] = None) -> Any:
        cancel.raise_if_cancelled()
        timeout = cancel.clamp(self.request_timeout)
        url = f"{self.base_url}{path}"
        logger.debug("%s %s (model=%s)", method, url, self._model)
        try:
            response = requests.request(method, url, headers=self._headers(), json=payload, timeout=timeout)
        except requests.RequestException as exc:
            cancel.raise_if_cancelled()
            logger.error("Failed to reach Anthropic API: %s", exc)
            raise ProviderError(f"anthropic request failed: {exc}") from exc
        cancel.raise_if_cancelled()

        if response.status_code != 200:
            logger.error("Anthropic API returned status %s: %s", response.status_code, response.text)
            raise ProviderError(f"anthropic API returned status {response.status_code}: {response.text}")
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise ProviderError("failed to parse anthropic response") from exc

    def _complete(self, prompt: str, max_tokens: int, cancel: CancellationToken) -> str:
        data = self._request(
            "POST",
            "/messages",
            cancel,
            payload={
                "model": self._model,
                "max_tokens": max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        for block in data.get("content", []) if isinstance(data, dict) else []:
            if isinstance(block, dict) and block.get("type") == "text":
                return block.get("text", "")
        raise ProviderError("empty response from anthropic")

    def list_models(self, cancel: CancellationToken) -> List[ModelInfo]:
        data = self._request("GET", "/models", cancel)
        models = []
        for entry in data.get("data", []) if isinstance(data, dict) else []:
            if isinstance(entry, dict) and entry.get("id"):
                models.append(ModelInfo(id=entry["id"], name=entry.get("display_name", "")))
        return models

    def summarize_changes(self, request: SummarizeRequest, cancel: CancellationToken) -> SummarizeResponse:
        text = self._complete(build_summary_prompt(request), request.options.max_tokens or 2048, cancel)
        return parse_json_response(text, SummarizeResponse.from_dict)

    def order_files(self, request: OrderRequest, cancel: CancellationToken) -> OrderResponse:
        text = self._complete(build_order_prompt(request), 4096, cancel)
        return parse_json_response(text, OrderResponse.from_dict)

    def review_changes(self, request: ReviewRequest, cancel: CancellationToken) -> ReviewResponse:
        return ReviewResponse(content=self._complete(build_review_prompt(request), request.max_tokens, cancel))
