from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class EmailError(RuntimeError):
    pass


class EmailRateLimited(EmailError):
    pass


@dataclass(frozen=True)
class ResendClient:
    api_key: str
    base_url: str = "https://api.resend.com"
    timeout_seconds: int = 30

    def post_json(self, path: str, body: dict[str, Any], *, retries: int = 3) -> dict[str, Any]:
        url = self.base_url.rstrip("/") + path
        data = json.dumps(body).encode("utf-8")

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, data=data, method="POST")
                req.add_header("Authorization", f"Bearer {self.api_key}")
                req.add_header("Content-Type", "application/json")
                req.add_header("Accept", "application/json")
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                    try:
                        return json.loads(raw.decode("utf-8") or "{}")
                    except Exception as e:
                        raise EmailError(f"Invalid JSON from Resend ({path})") from e
            except urllib.error.HTTPError as e:
                if e.code == 429:
                    # rate limit; brief backoff
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = EmailRateLimited("Rate limited (429)")
                    continue
                try:
                    err_body = e.read().decode("utf-8", errors="ignore")
                except Exception:
                    err_body = ""
                raise EmailError(f"HTTP {e.code} from Resend: {err_body[:300]}") from e
            except EmailError:
                raise
            except Exception as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        raise EmailError(f"Resend request failed after retries: {last_err}")

    def send(
        self,
        *,
        sender: str,
        to: list[str],
        subject: str,
        text: str | None = None,
        html: str | None = None,
        tags: list[dict[str, str]] | None = None,
    ) -> str | None:
        body: dict[str, Any] = {"from": sender, "to": to, "subject": subject}
        if text:
            body["text"] = text
        if html:
            body["html"] = html
        if tags:
            body["tags"] = tags
        j = self.post_json("/emails", body)
        return j.get("id")


def send_email(
    config: dict,
    *,
    to: str | list[str],
    subject: str,
    text: str | None = None,
    html: str | None = None,
    tags: dict[str, str] | None = None,
) -> str | None:
    """
    Send one email through the configured backend.

    EMAIL_BACKEND=log only logs the message (dev/tests). EMAIL_BACKEND=resend posts to
    the Resend API and returns its message id. Raises EmailError on provider failure.
    """
    recipients = [to] if isinstance(to, str) else list(to)
    backend = (config.get("EMAIL_BACKEND") or "log").strip().lower()
    if backend == "resend":
        api_key = (config.get("RESEND_API_KEY") or "").strip()
        if not api_key:
            raise EmailError("RESEND_API_KEY is not configured.")
        client = ResendClient(api_key=api_key)
        message_id = client.send(
            sender=config.get("EMAIL_FROM") or "",
            to=recipients,
            subject=subject,
            text=text,
            html=html,
            tags=[{"name": k, "value": v} for k, v in (tags or {}).items()],
        )
        logger.info("Email sent via Resend id=%s to=%s subject=%s", message_id, ", ".join(recipients), subject)
        return message_id
    if backend != "log":
        raise EmailError(f"Unknown EMAIL_BACKEND: {backend}")
    logger.info("Email (log backend) to=%s subject=%s\n%s", ", ".join(recipients), subject, text or html or "")
    return None
