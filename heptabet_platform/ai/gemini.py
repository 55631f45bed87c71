from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests


@dataclass
class GeminiError(Exception):
    message: str


def build_analysis_prompt(prediction: Dict[str, Any]) -> str:
    """Prompt for a short match preview backing up a published tip (public prediction shape)."""
    odds = prediction.get("odds")
    lines = [
        "You are a football betting analyst writing for subscribers of a tips service.",
        f"Match: {prediction.get('homeTeam')} vs {prediction.get('awayTeam')} ({prediction.get('league')})",
        f"Kick-off: {prediction.get('date')} {prediction.get('time') or ''}".rstrip(),
        f"Our tip: {prediction.get('tip')}" + (f" @ {odds}" if odds is not None else ""),
    ]
    if prediction.get("confidence") is not None:
        lines.append(f"Tipster confidence: {prediction.get('confidence')}/10")
    lines.append(
        "In under 150 words, cover recent form, key players and the tactical matchup, "
        "and say whether the tip is good value. Plain text, no markdown headings."
    )
    return "\n".join(lines)


def generate_content(
    api_key: str,
    base_url: str,
    model: str,
    prompt: str,
    temperature: float = 0.7,
    max_output_tokens: int = 1024,
    retries: int = 2,
    timeout_seconds: int = 30,
    session: Optional[requests.Session] = None,
) -> str:
    """Call Gemini generateContent and return the model's plain-text answer."""
    if not api_key:
        raise GeminiError("Missing API key")
    if not model:
        raise GeminiError("Missing model")
    if not prompt:
        raise GeminiError("Missing prompt")

    base = (base_url or "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
    if base.endswith("/v1beta"):
        url = f"{base}/models/{model}:generateContent"
    else:
        url = f"{base}/v1beta/models/{model}:generateContent"

    payload: Dict[str, Any] = {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": float(temperature),
            "maxOutputTokens": int(max_output_tokens),
        },
    }
    # Key in a header so it never lands in access logs via the URL.
    headers = {"x-goog-api-key": api_key}
    http = session or requests

    last_err: Optional[str] = None
    for attempt in range(retries):
        try:
            r = http.post(url, json=payload, headers=headers, timeout=timeout_seconds)
            if r.status_code != 200:
                last_err = f"HTTP {r.status_code}"
                # Retry on 5xx
                if 500 <= r.status_code < 600 and attempt < retries - 1:
                    time.sleep(1.0 * (attempt + 1))
                    continue
                raise GeminiError(last_err)

            data = r.json()
            # Expected: candidates[0].content.parts[*].text
            candidates = data.get("candidates") or []
            if not candidates:
                raise GeminiError("No candidates in response")
            parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
            text = "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))
            if not text.strip():
                raise GeminiError("No text in response")
            return text.strip()
        except GeminiError:
            raise
        except (requests.RequestException, ValueError) as e:
            last_err = e.__class__.__name__
            if attempt < retries - 1:
                time.sleep(1.0 * (attempt + 1))
                continue
            raise GeminiError(f"Failed to call Gemini: {last_err}") from e

    raise GeminiError(f"Failed to call Gemini: {last_err}")
