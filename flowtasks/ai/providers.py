"""AI settings and HTTP completion services.

Each provider turns (system, user, context) into one HTTP request and
returns the model's text. Request shapes follow each vendor's chat API.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from urllib import error, parse, request

from flowtasks.config import ai_settings_path
from flowtasks.errors import ServiceError
from flowtasks.util.console import obs_log

from .prompts import user_message

JsonDict = Dict[str, Any]

PROVIDERS = ("openai", "anthropic", "gemini", "openai_compat", "custom")

DEFAULT_TIMEOUT_S = 120
TEMPERATURE = 0.2


# --- Settings -----------------------------------------------------------------

def default_ai_settings() -> JsonDict:
    return {
        "enabled": False,
        "auto_refine": False,
        "provider": "openai",
        "model": "",
        "endpoint": "",
        "headers_json": "",
        "remember_key": False,
        "api_key": "",
    }


def load_ai_settings(path: Optional[Path] = None) -> JsonDict:
    """Defaults overlaid with the stored settings; unreadable files yield defaults."""
    p = path or ai_settings_path()
    try:
        obj = json.loads(Path(p).read_text(encoding="utf-8", errors="replace"))
    except (OSError, ValueError):
        return default_ai_settings()
    if not isinstance(obj, dict):
        return default_ai_settings()
    out = default_ai_settings()
    out.update({k: v for k, v in obj.items() if k in out})
    return out


def save_ai_settings(settings: JsonDict, path: Optional[Path] = None) -> None:
    p = Path(path or ai_settings_path())
    data = default_ai_settings()
    data.update({k: v for k, v in settings.items() if k in data})
    if not data.get("remember_key"):
        data["api_key"] = ""
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def clear_ai_settings(path: Optional[Path] = None) -> None:
    p = Path(path or ai_settings_path())
    if p.exists():
        p.unlink()


def ai_ready_state(settings: JsonDict) -> JsonDict:
    if not settings.get("enabled"):
        return {"enabled": False, "ready": False, "reason": "disabled"}
    if settings.get("provider") == "openai_compat":
        return {"enabled": True, "ready": True, "reason": "local_compat_ok"}
    if not settings.get("api_key"):
        return {"enabled": True, "ready": False, "reason": "missing_key"}
    return {"enabled": True, "ready": True, "reason": "ok"}


def extra_headers(headers_json: str, key: str) -> Dict[str, str]:
    """Parse user-supplied headers JSON, substituting {{KEY}}; invalid -> {}."""
    if not headers_json:
        return {}
    try:
        obj = json.loads(headers_json.replace("{{KEY}}", key))
    except ValueError:
        return {}
    if not isinstance(obj, dict):
        return {}
    return {str(k): str(v) for k, v in obj.items()}


# --- Transport ----------------------------------------------------------------

def _post(url: str, body: JsonDict, headers: Dict[str, str], *, label: str, timeout: int) -> str:
    data = json.dumps(body).encode("utf-8")
    req = request.Request(url, data=data, method="POST")
    req.add_header("Content-Type", "application/json")
    for k, v in headers.items():
        req.add_header(k, v)
    t0 = time.monotonic()
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            text = resp.read().decode("utf-8", errors="replace")
    except error.HTTPError as e:
        elapsed_ms = int((time.monotonic() - t0) * 1000)
        body_txt = ""
        try:
            body_txt = e.read().decode("utf-8", errors="replace").strip()
        except OSError:
            body_txt = ""
        msg = _error_message(body_txt) or f"{label} error ({e.code})"
        raise ServiceError(f"{msg} after {elapsed_ms}ms") from e
    except error.URLError as e:
        elapsed_ms = int((time.monotonic() - t0) * 1000)
        raise ServiceError(f"{label} connection error after {elapsed_ms}ms: {e}") from e
    obs_log("ai.providers", "info", f"{label} responded in {int((time.monotonic() - t0) * 1000)}ms")
    return text


def _error_message(body_txt: str) -> Optional[str]:
    try:
        obj = json.loads(body_txt)
    except ValueError:
        return None
    err = obj.get("error") if isinstance(obj, dict) else None
    if isinstance(err, dict) and isinstance(err.get("message"), str):
        return err["message"]
    return None


def _json(text: str, label: str) -> JsonDict:
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise ServiceError(f"{label} returned non-JSON response") from e
    if not isinstance(obj, dict):
        raise ServiceError(f"{label} response must be a JSON object")
    return obj


def _chat_content(obj: JsonDict) -> str:
    try:
        content = obj["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ""
    return content if isinstance(content, str) else ""


# --- Services -----------------------------------------------------------------

class HttpCompletionService:
    """Completion service for one provider, configured from AI settings."""

    def __init__(
        self,
        provider: str,
        *,
        model: str = "",
        endpoint: str = "",
        api_key: str = "",
        headers_json: str = "",
        timeout: int = DEFAULT_TIMEOUT_S,
    ) -> None:
        if provider not in PROVIDERS:
            raise ValueError(f"Unsupported provider: {provider}")
        if provider == "custom" and not endpoint:
            raise ValueError("Custom provider needs an endpoint URL")
        self.provider = provider
        self.model = model
        self.endpoint = endpoint
        self.api_key = api_key
        self.headers_json = headers_json
        self.timeout = timeout

    def complete(self, system: str, user: str, context: JsonDict) -> str:
        handler: Callable[[str, str, JsonDict], str] = getattr(self, f"_complete_{self.provider}")
        return handler(system, user, context)

    def _headers(self, base: Dict[str, str]) -> Dict[str, str]:
        out = dict(base)
        out.update(extra_headers(self.headers_json, self.api_key))
        return out

    def _chat_body(self, default_model: str, system: str, user: str, context: JsonDict) -> JsonDict:
        return {
            "model": self.model or default_model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user_message(user, context)},
            ],
            "temperature": TEMPERATURE,
        }

    def _complete_openai(self, system: str, user: str, context: JsonDict) -> str:
        url = self.endpoint or "https://api.openai.com/v1/chat/completions"
        headers = self._headers({"Authorization": f"Bearer {self.api_key}"})
        body = self._chat_body("gpt-4o-mini", system, user, context)
        text = _post(url, body, headers, label="OpenAI", timeout=self.timeout)
        return _chat_content(_json(text, "OpenAI"))

    def _complete_openai_compat(self, system: str, user: str, context: JsonDict) -> str:
        url = self.endpoint or "http://localhost:11434/v1/chat/completions"
        headers = self._headers({"Authorization": f"Bearer {self.api_key}"} if self.api_key else {})
        body = self._chat_body("llama3.1", system, user, context)
        text = _post(url, body, headers, label="OpenAI-compatible", timeout=self.timeout)
        return _chat_content(_json(text, "OpenAI-compatible"))

    def _complete_anthropic(self, system: str, user: str, context: JsonDict) -> str:
        url = self.endpoint or "https://api.anthropic.com/v1/messages"
        headers = self._headers({"x-api-key": self.api_key, "anthropic-version": "2023-06-01"})
        body = {
            "model": self.model or "claude-3-5-sonnet-20240620",
            "max_tokens": 1200,
            "temperature": TEMPERATURE,
            "system": system,
            "messages": [{"role": "user", "content": user_message(user, context)}],
        }
        obj = _json(_post(url, body, headers, label="Anthropic", timeout=self.timeout), "Anthropic")
        parts = obj.get("content") if isinstance(obj.get("content"), list) else []
        return "\n".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))

    def _complete_gemini(self, system: str, user: str, context: JsonDict) -> str:
        model = self.model or "gemini-1.5-flash"
        url = self.endpoint or (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{parse.quote(model, safe='')}:generateContent?key={parse.quote(self.api_key, safe='')}"
        )
        body = {
            "contents": [{"role": "user", "parts": [{"text": f"{system}\n\n{user_message(user, context)}"}]}],
            "generationConfig": {"temperature": TEMPERATURE},
        }
        obj = _json(_post(url, body, self._headers({}), label="Gemini", timeout=self.timeout), "Gemini")
        try:
            parts = obj["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return ""
        return "\n".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))

    def _complete_custom(self, system: str, user: str, context: JsonDict) -> str:
        body = {"system": system, "user": user, "context": context, "model": self.model}
        text = _post(self.endpoint, body, self._headers({}), label="Custom", timeout=self.timeout)
        try:
            obj = json.loads(text)
        except ValueError:
            return text
        if isinstance(obj, dict):
            return str(obj.get("text") or obj.get("output") or text)
        return text


def completion_service_from_settings(settings: JsonDict) -> HttpCompletionService:
    return HttpCompletionService(
        str(settings.get("provider") or "openai"),
        model=str(settings.get("model") or ""),
        endpoint=str(settings.get("endpoint") or ""),
        api_key=str(settings.get("api_key") or ""),
        headers_json=str(settings.get("headers_json") or ""),
    )
