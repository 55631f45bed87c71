"""Outbound email.

Two backends:
- console: prints the message (local development; nothing leaves the box)
- http: POSTs JSON {from, to, subject, text} to a transactional mail API
  (Resend-style) with a bearer key

The HTTP call has a short connect/read timeout so a slow relay cannot hold
the request that triggered it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from heptabet_platform.config import Config


def _debug(msg: str) -> None:
    print(f"[mail] {msg}")


@dataclass
class MailError(Exception):
    message: str


class ConsoleMailer:
    def send(self, *, to: str, subject: str, text: str) -> None:
        _debug(f"(console) to={to} subject={subject!r}\n{text}")


class HttpMailer:
    def __init__(
        self,
        *,
        api_url: str,
        api_key: Optional[str],
        sender: str,
        timeout_seconds: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_url:
            raise MailError("Missing mail API url")
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout_seconds = float(timeout_seconds)
        self._http = session or requests.Session()

    def send(self, *, to: str, subject: str, text: str) -> None:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload: Dict[str, Any] = {"from": self.sender, "to": [to], "subject": subject, "text": text}
        try:
            r = self._http.post(
                self.api_url,
                json=payload,
                headers=headers,
                timeout=(self.timeout_seconds, self.timeout_seconds),
            )
        except requests.RequestException as e:
            _debug(f"send failed to={to}: {e.__class__.__name__}")
            raise MailError(f"Mail API unreachable: {e.__class__.__name__}") from e

        if r.status_code >= 300:
            _debug(f"send failed to={to}: HTTP {r.status_code}")
            raise MailError(f"Mail API HTTP {r.status_code}")
        _debug(f"sent to={to} subject={subject!r}")


def build_mailer(cfg: Config) -> Any:
    backend = (cfg.MAIL_BACKEND or "console").strip().lower()
    if backend == "http":
        return HttpMailer(
            api_url=str(cfg.MAIL_API_URL or ""),
            api_key=cfg.MAIL_API_KEY,
            sender=cfg.MAIL_FROM,
            timeout_seconds=cfg.MAIL_TIMEOUT_SECONDS,
        )
    if backend != "console":
        _debug(f"unknown MAIL_BACKEND={backend!r}; using console")
    return ConsoleMailer()
