from __future__ import annotations
import json
import logging
import os
from typing import Any, Dict, List, Optional, Union

from dotenv import find_dotenv, load_dotenv
from openai import BadRequestError, OpenAI

# Carrega .env sem sobrescrever variáveis já presentes
load_dotenv(find_dotenv(usecwd=True), override=False)

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "gpt-4o-mini"

__all__ = ["OpenAIClient", "LLM", "LLMResponseError"]


class LLMResponseError(ValueError):
    """Resposta do modelo fora do formato esperado (ex.: JSON inválido)."""


class OpenAIClient:
    """Wrapper leve para a API de chat do OpenAI SDK v1."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        chat_model: Optional[str] = None,
        temperature: float = 1.0,
    ) -> None:
        key = (api_key or os.getenv("OPENAI_API_KEY") or "").strip()
        if not key:
            raise RuntimeError(
                "OPENAI_API_KEY não definido: configure no .env ou passe api_key"
            )

        self.client = OpenAI(api_key=key, timeout=float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60")))
        self.chat_model = chat_model or os.getenv("OPENAI_MODEL") or FALLBACK_MODEL
        self.temperature = float(os.getenv("OPENAI_TEMPERATURE", str(temperature)))

    def _token_key(self) -> str:
        """Nome do parâmetro de limite de tokens aceito pelo modelo."""
        model = (self.chat_model or "").lower()
        if any(m in model for m in ("gpt-5", "gpt-4o", "gpt-4.1", "o1", "o3")):
            return "max_completion_tokens"
        return "max_tokens"

    def _chat_create(self, params: Dict[str, Any]) -> Any:
        """Executa a chamada ao chat com fallbacks leves (modelo e temperatura)."""
        try:
            return self.client.chat.completions.create(**params)
        except BadRequestError as e:
            logger.error("OpenAI 400: %s", getattr(e, "message", str(e)))
            if params.get("model") != FALLBACK_MODEL:
                params["model"] = FALLBACK_MODEL
                return self._chat_create(params)
            raise
        except Exception as e:
            msg = str(e).lower()
            if (
                "temperature" in params
                and "temperature" in msg
                and ("unsupported" in msg or "only the default" in msg)
            ):
                params.pop("temperature", None)
                return self._chat_create(params)
            raise

    def _create_with_token_fallback(self, params: Dict[str, Any], max_tokens: Optional[int]) -> Any:
        token_key = self._token_key()
        p = dict(params)
        if max_tokens is not None:
            p[token_key] = max_tokens
        try:
            return self._chat_create(p)
        except Exception as e:
            msg = str(e).lower()
            if (
                max_tokens is not None
                and token_key == "max_tokens"
                and "max_tokens" in msg
                and "max_completion_tokens" in msg
            ):
                p = dict(params)
                p["max_completion_tokens"] = max_tokens
                return self._chat_create(p)
            raise


class LLM(OpenAIClient):
    """Cliente de LLM usado na geração de insights dos relatórios."""

    def generate(
        self,
        prompt: Union[str, List[Dict[str, str]]],
        *,
        temperature: Optional[float] = None,
        system: Optional[str] = None,
        max_tokens: int = 600,
        json_mode: bool = False,
    ) -> str:
        """Gera resposta a partir de um prompt simples ou lista de mensagens."""
        if isinstance(prompt, str):
            messages: List[Dict[str, str]] = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
        else:
            messages = prompt

        params: Dict[str, Any] = {"model": self.chat_model, "messages": messages}
        temp = self.temperature if temperature is None else temperature
        if temp != 1.0:
            params["temperature"] = temp
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        resp = self._create_with_token_fallback(params, max_tokens)
        return (resp.choices[0].message.content or "").strip()

    def generate_json(self, prompt: str, *, system: Optional[str] = None, max_tokens: int = 1500) -> Dict[str, Any]:
        """Como generate(), exigindo um objeto JSON na resposta."""
        text = self.generate(prompt, system=system, max_tokens=max_tokens, json_mode=True)
        # alguns modelos ainda cercam o JSON com ```json
        if text.startswith("```"):
            text = text.strip("`")
            if text.lower().startswith("json"):
                text = text[4:]
        try:
            data = json.loads(text)
        except ValueError as e:
            raise LLMResponseError(f"Resposta do modelo não é JSON: {e}") from e
        if not isinstance(data, dict):
            raise LLMResponseError("Resposta do modelo não é um objeto JSON")
        return data
