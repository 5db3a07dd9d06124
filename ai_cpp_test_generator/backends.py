"""
Model backends - Ollama, Gemini and Groq behind one list/generate protocol
"""

import json
import os
import time
from typing import Iterator, List, Optional

import google.generativeai as genai
import requests
from pydantic import BaseModel, ConfigDict

from .errors import BackendError, BackendTimeoutError

DEFAULT_OLLAMA_HOST = "http://localhost:11434"
CONNECT_TIMEOUT = 10
GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class GenerationOptions(BaseModel):
    """Sampling options forwarded to the backend"""

    model_config = ConfigDict(frozen=True)

    context_window: int = 4096
    max_output_tokens: int = 1024
    temperature: float = 0.7


class ModelBackend:
    """Protocol every backend implements.

    ``generate`` yields response fragments; callers concatenate them. Any
    failure, including the per-attempt deadline expiring, raises
    ``BackendError``.
    """

    name = "backend"

    def list_models(self) -> List[str]:
        raise NotImplementedError

    def generate(self, model: str, prompt: str, options: GenerationOptions, timeout_seconds: float) -> Iterator[str]:
        raise NotImplementedError


def _check_deadline(deadline: float, model: str):
    if time.monotonic() > deadline:
        raise BackendTimeoutError(f"Request to {model} exceeded its deadline")


def resolve_ollama_host(host: Optional[str] = None) -> str:
    """OLLAMA_HOST may be given as bare host:port; default to http"""
    url = (host or os.getenv("OLLAMA_HOST") or DEFAULT_OLLAMA_HOST).strip().rstrip("/")
    if "://" not in url:
        url = "http://" + url
    return url


class OllamaBackend(ModelBackend):
    """Local Ollama server: /api/tags for listing, streamed /api/generate"""

    name = "ollama"

    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None):
        self.base_url = resolve_ollama_host(base_url)
        self.session = session or requests.Session()

    def list_models(self) -> List[str]:
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=30)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise BackendError(f"Failed to list Ollama models at {self.base_url}: {e}") from e
        models = payload.get("models", []) if isinstance(payload, dict) else None
        if not isinstance(models, list):
            raise BackendError(f"Unexpected model listing from {self.base_url}: {payload!r}")
        return [m.get("name") or m.get("model") for m in models if isinstance(m, dict)]

    def generate(self, model: str, prompt: str, options: GenerationOptions, timeout_seconds: float) -> Iterator[str]:
        """Stream NDJSON chunks from /api/generate.

        The deadline is checked as each line arrives and ``timeout_seconds`` is
        also the read timeout, so a stalled stream ends an attempt after at
        most twice ``timeout_seconds``.
        """
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": True,
            "options": {
                "num_ctx": options.context_window,
                "num_predict": options.max_output_tokens,
                "temperature": options.temperature,
            },
        }
        deadline = time.monotonic() + timeout_seconds
        try:
            with self.session.post(f"{self.base_url}/api/generate", json=payload,
                                   stream=True, timeout=(CONNECT_TIMEOUT, timeout_seconds)) as response:
                response.raise_for_status()
                for line in response.iter_lines():
                    _check_deadline(deadline, model)
                    if not line:
                        continue
                    chunk = json.loads(line)
                    if not isinstance(chunk, dict):
                        raise BackendError(f"Unexpected stream chunk from {model}: {chunk!r}")
                    if chunk.get("error"):
                        raise BackendError(f"Ollama error from {model}: {chunk['error']}")
                    yield chunk.get("response", "")
                    if chunk.get("done"):
                        break
        except requests.Timeout as e:
            raise BackendTimeoutError(f"Request to {model} timed out: {e}") from e
        except (requests.RequestException, ValueError) as e:
            raise BackendError(f"API call to {model} failed: {e}") from e


class GeminiBackend(ModelBackend):
    """Google Gemini through google-generativeai"""

    name = "gemini"

    def __init__(self, api_key: str):
        if not api_key:
            raise BackendError("Gemini API key not provided. Set GEMINI_API_KEY or use --api-key.")
        genai.configure(api_key=api_key)

    def list_models(self) -> List[str]:
        try:
            models = list(genai.list_models())
        except Exception as e:
            raise BackendError(f"Failed to list Gemini models: {e}") from e
        names = []
        for m in models:
            if "generateContent" in getattr(m, "supported_generation_methods", []):
                names.append(m.name.split("/", 1)[-1])
        return names

    def generate(self, model: str, prompt: str, options: GenerationOptions, timeout_seconds: float) -> Iterator[str]:
        deadline = time.monotonic() + timeout_seconds
        config = genai.types.GenerationConfig(
            max_output_tokens=options.max_output_tokens,
            temperature=options.temperature,
        )
        try:
            response = genai.GenerativeModel(model).generate_content(
                prompt, generation_config=config, stream=True,
                request_options={"timeout": timeout_seconds},
            )
            for chunk in response:
                _check_deadline(deadline, model)
                yield chunk.text
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Gemini generation with {model} failed: {e}") from e


class GroqBackend(ModelBackend):
    """Groq's OpenAI-compatible API"""

    name = "groq"

    def __init__(self, api_key: str, base_url: str = GROQ_BASE_URL,
                 session: Optional[requests.Session] = None):
        if not api_key:
            raise BackendError("Groq API key not provided. Set GROQ_API_KEY or use --api-key.")
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def list_models(self) -> List[str]:
        try:
            response = self.session.get(f"{self.base_url}/models", headers=self.headers, timeout=30)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise BackendError(f"Failed to list Groq models: {e}") from e
        models = payload.get("data", []) if isinstance(payload, dict) else None
        if not isinstance(models, list):
            raise BackendError(f"Unexpected Groq model listing: {payload!r}")
        return [m["id"] for m in models if isinstance(m, dict) and "id" in m]

    def generate(self, model: str, prompt: str, options: GenerationOptions, timeout_seconds: float) -> Iterator[str]:
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.max_output_tokens,
            "temperature": options.temperature,
        }
        try:
            response = self.session.post(f"{self.base_url}/chat/completions", json=payload,
                                         headers=self.headers, timeout=timeout_seconds)
            response.raise_for_status()
            result = response.json()
        except requests.Timeout as e:
            raise BackendTimeoutError(f"Request to {model} timed out: {e}") from e
        except (requests.RequestException, ValueError) as e:
            raise BackendError(f"API call to {model} failed: {e}") from e
        try:
            yield result["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise BackendError(f"Unexpected Groq response shape: {e}") from e


def create_backend(choice: str, api_key: Optional[str] = None) -> ModelBackend:
    """Instantiate the backend named on the command line"""
    if choice == "ollama":
        return OllamaBackend()
    if choice == "gemini":
        return GeminiBackend(api_key or os.getenv("GEMINI_API_KEY"))
    if choice == "groq":
        return GroqBackend(api_key or os.getenv("GROQ_API_KEY"))
    raise ValueError("Invalid model choice. Must be 'ollama', 'gemini', or 'groq'.")
