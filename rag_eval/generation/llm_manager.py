"""
LLM Manager - generation capability for the evaluation engine.

One instance answers questions for one (provider, model) pair. The same
interface serves the RAG path, the baseline path and the judge.

Supports:
  - Ollama (local): llama3.1, mistral, qwen2.5
  - OpenAI API: gpt-4o-mini
  - Azure OpenAI: gpt-4.1-mini deployments
  - Anthropic API: claude-sonnet

Features:
  - Retry with exponential backoff (3 attempts, delay 2^n seconds)
  - Timeout of 60 seconds per request
  - Logging of each call: model, tokens in/out, latency, attempt
  - Optional disk cache: {cache_dir}/{model}_cache.json
  - Configuration errors (missing package, missing key) raise LLMError
    immediately; exhausted retries return an LLMResponse with `error` set
"""

import hashlib
import json
import logging
import os
import time
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CACHE_DIR = PROJECT_ROOT / "data" / "llm_cache"


class LLMResponse(BaseModel):
    """Structured response from any LLM provider."""
    text: str
    model: str
    provider: str
    tokens_input: int = 0
    tokens_output: int = 0
    latency_ms: float = 0.0
    from_cache: bool = False
    error: Optional[str] = None


class LLMError(Exception):
    """Raised when an LLM call cannot be made or its result is unusable."""
    pass


# ============================================================
# Model shortnames
# ============================================================

LLM_CONFIGS = {
    "llama3.1": {
        "provider": "ollama",
        "model": "llama3.1:8b-instruct-q4_K_M",
        "description": "Meta Llama 3.1 8B - local default",
    },
    "mistral": {
        "provider": "ollama",
        "model": "mistral:7b-instruct-v0.3-q4_K_M",
        "description": "Mistral 7B - good at following instructions",
    },
    "qwen2.5": {
        "provider": "ollama",
        "model": "qwen2.5:7b-instruct-q4_K_M",
        "description": "Qwen 2.5 7B - strong multilingual reasoning",
    },
    "gpt4o-mini": {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "description": "GPT-4o Mini - commercial reference",
    },
    "gpt41-mini": {
        "provider": "azure",
        "model": "gpt-4.1-mini",
        "description": "GPT-4.1 Mini on Azure OpenAI - generation and judge",
    },
    "claude-sonnet": {
        "provider": "anthropic",
        "model": "claude-sonnet-4-20250514",
        "description": "Claude Sonnet - commercial reference",
    },
}


class LLMManager:
    """Multi-provider LLM client with retry and optional caching."""

    def __init__(
        self,
        provider: str,
        model: str,
        cache_enabled: bool = False,
        cache_dir: Optional[str] = None,
        max_retries: int = 3,
        timeout: int = 60,
    ):
        self.provider = provider
        self.model = model
        if model in LLM_CONFIGS:
            self.provider = LLM_CONFIGS[model]["provider"]
            self.model = LLM_CONFIGS[model]["model"]

        self.cache_enabled = cache_enabled
        self.max_retries = max_retries
        self.timeout = timeout

        self._cache = {}
        self.cache_path = None
        if cache_enabled:
            cache_root = Path(cache_dir) if cache_dir else DEFAULT_CACHE_DIR
            cache_root.mkdir(parents=True, exist_ok=True)
            model_safe = self.model.replace("/", "_").replace(":", "_")
            self.cache_path = cache_root / f"{model_safe}_cache.json"
            self._cache = self._load_cache()

        env_path = PROJECT_ROOT / ".env"
        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

    def __repr__(self):
        return f"LLMManager(provider={self.provider!r}, model={self.model!r})"

    # ============================================================
    # Cache
    # ============================================================

    def _load_cache(self) -> dict:
        if self.cache_path and self.cache_path.exists():
            try:
                return json.loads(self.cache_path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Ignoring unreadable cache %s: %s", self.cache_path, e)
        return {}

    def _save_cache(self):
        try:
            self.cache_path.write_text(
                json.dumps(self._cache, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning("Failed to save cache: %s", e)

    @staticmethod
    def _cache_key(prompt: str, system_prompt: str, temperature: float) -> str:
        content = f"{prompt}||{system_prompt}||{temperature}"
        return hashlib.sha256(content.encode()).hexdigest()

    # ============================================================
    # Main generate method
    # ============================================================

    def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Generate a completion. Retries transient failures with exponential backoff."""
        key = self._cache_key(prompt, system_prompt, temperature)
        if self.cache_enabled and key in self._cache:
            cached = self._cache[key]
            logger.debug("Cache hit for %s (key=%s...)", self.model, key[:8])
            return LLMResponse(
                text=cached["text"],
                model=self.model,
                provider=self.provider,
                tokens_input=cached.get("tokens_input", 0),
                tokens_output=cached.get("tokens_output", 0),
                from_cache=True,
            )

        handlers = {
            "ollama": self._generate_ollama,
            "openai": self._generate_openai,
            "azure": self._generate_azure,
            "anthropic": self._generate_anthropic,
        }
        handler = handlers.get(self.provider)
        if handler is None:
            raise LLMError(f"Unknown provider: {self.provider}")

        last_error = None
        for attempt in range(self.max_retries):
            try:
                start = time.perf_counter()
                response = handler(prompt, system_prompt, max_tokens, temperature)
                response.latency_ms = (time.perf_counter() - start) * 1000

                logger.info(
                    "LLM call: model=%s, tokens_in=%d, tokens_out=%d, latency=%.0fms, attempt=%d",
                    self.model, response.tokens_input, response.tokens_output,
                    response.latency_ms, attempt + 1,
                )

                if self.cache_enabled:
                    self._cache[key] = {
                        "text": response.text,
                        "tokens_input": response.tokens_input,
                        "tokens_output": response.tokens_output,
                    }
                    self._save_cache()
                return response

            except LLMError:
                raise  # Config errors are not retried
            except Exception as e:
                last_error = e
                wait = 2 ** (attempt + 1)
                logger.warning(
                    "LLM call failed (attempt %d/%d), retrying in %ds: %s",
                    attempt + 1, self.max_retries, wait, e,
                )
                if attempt < self.max_retries - 1:
                    time.sleep(wait)

        error_msg = f"All {self.max_retries} retries failed: {last_error}"
        logger.error(error_msg)
        return LLMResponse(text="", model=self.model, provider=self.provider, error=error_msg)

    # ============================================================
    # Provider-specific implementations
    # ============================================================

    @staticmethod
    def _messages(prompt: str, system_prompt: str) -> list:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _generate_ollama(self, prompt, system_prompt, max_tokens, temperature) -> LLMResponse:
        try:
            import ollama
        except ImportError:
            raise LLMError("ollama package not installed. Run: pip install -e .[llm]")

        try:
            response = ollama.chat(
                model=self.model,
                messages=self._messages(prompt, system_prompt),
                options={"temperature": temperature, "num_predict": max_tokens},
            )
        except Exception as e:
            error_str = str(e).lower()
            if "connection" in error_str or "refused" in error_str:
                raise LLMError("Ollama is not running. Start it with 'ollama serve'.")
            if "not found" in error_str or "pull" in error_str:
                raise LLMError(f"Model {self.model} not downloaded. Run: ollama pull {self.model}")
            raise

        return LLMResponse(
            text=response.get("message", {}).get("content", ""),
            model=self.model,
            provider="ollama",
            tokens_input=response.get("prompt_eval_count", 0) or 0,
            tokens_output=response.get("eval_count", 0) or 0,
        )

    def _openai_completion(self, client, prompt, system_prompt, max_tokens, temperature, provider):
        response = client.chat.completions.create(
            model=self.model,
            messages=self._messages(prompt, system_prompt),
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=self.timeout,
        )
        usage = response.usage
        return LLMResponse(
            text=response.choices[0].message.content or "",
            model=self.model,
            provider=provider,
            tokens_input=usage.prompt_tokens if usage else 0,
            tokens_output=usage.completion_tokens if usage else 0,
        )

    def _generate_openai(self, prompt, system_prompt, max_tokens, temperature) -> LLMResponse:
        api_key = os.getenv("OPENAI_API_KEY", "")
        if not api_key:
            raise LLMError("OPENAI_API_KEY not set (environment or .env file).")
        try:
            from openai import OpenAI
        except ImportError:
            raise LLMError("openai package not installed. Run: pip install -e .[llm]")

        client = OpenAI(api_key=api_key)
        return self._openai_completion(
            client, prompt, system_prompt, max_tokens, temperature, "openai"
        )

    def _generate_azure(self, prompt, system_prompt, max_tokens, temperature) -> LLMResponse:
        api_key = os.getenv("AZURE_OPENAI_API_KEY", "")
        endpoint = os.getenv("AZURE_OPENAI_ENDPOINT", "")
        if not api_key or not endpoint:
            raise LLMError("AZURE_OPENAI_API_KEY and AZURE_OPENAI_ENDPOINT must be set.")
        try:
            from openai import AzureOpenAI
        except ImportError:
            raise LLMError("openai package not installed. Run: pip install -e .[llm]")

        client = AzureOpenAI(
            api_key=api_key,
            azure_endpoint=endpoint,
            api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-10-21"),
        )
        return self._openai_completion(
            client, prompt, system_prompt, max_tokens, temperature, "azure"
        )

    def _generate_anthropic(self, prompt, system_prompt, max_tokens, temperature) -> LLMResponse:
        api_key = os.getenv("ANTHROPIC_API_KEY", "")
        if not api_key:
            raise LLMError("ANTHROPIC_API_KEY not set (environment or .env file).")
        try:
            from anthropic import Anthropic
        except ImportError:
            raise LLMError("anthropic package not installed. Run: pip install -e .[llm]")

        client = Anthropic(api_key=api_key)
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        response = client.messages.create(**kwargs)

        text = "".join(block.text for block in response.content if hasattr(block, "text"))
        return LLMResponse(
            text=text,
            model=self.model,
            provider="anthropic",
            tokens_input=response.usage.input_tokens if response.usage else 0,
            tokens_output=response.usage.output_tokens if response.usage else 0,
        )

    # ============================================================
    # Utility
    # ============================================================

    def is_available(self) -> bool:
        """Best-effort check that the provider can be reached."""
        if self.provider == "openai":
            return bool(os.getenv("OPENAI_API_KEY"))
        if self.provider == "azure":
            return bool(os.getenv("AZURE_OPENAI_API_KEY") and os.getenv("AZURE_OPENAI_ENDPOINT"))
        if self.provider == "anthropic":
            return bool(os.getenv("ANTHROPIC_API_KEY"))
        if self.provider == "ollama":
            try:
                import ollama
                models = ollama.list()
            except Exception as e:
                logger.debug("Ollama unavailable: %s", e)
                return False
            if hasattr(models, "models"):
                names = [m.model for m in models.models]
            else:
                names = [m.get("name", "") for m in models.get("models", [])]
            base = self.model.split(":")[0]
            return any(base in n for n in names)
        return False
