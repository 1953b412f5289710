"""Abstract base class for delivery channel adapters.

Every channel (push, whatsapp, sms) implements :class:`ChannelAdapter`.
``send`` returns a :class:`SendResult` whose ``status`` is ``"sent"``
on success or another terminal string (``no_tokens``, ``no_phone``,
``opted_out``) when the recipient cannot be reached for reasons that
are not the provider's fault.  Provider failures raise
:class:`ChannelError`.

Context keys prefixed with ``_`` (``_phone``, ``_title``, ``_body``,
``_language``) are routing hints for the adapter and are never
forwarded to a provider as template parameters.
"""

from __future__ import annotations

import abc
import contextlib
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from courier.core.types import Channel

log = logging.getLogger(__name__)


class ChannelError(Exception):
    """Raised by channel adapters when the provider rejects or cannot take a send.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure looks transient (timeouts, 5xx).
    status_code:
        HTTP status returned by the provider, if any.
    body:
        Parsed JSON error body returned by the provider, if any.

    """

    def __init__(
        self,
        detail: str,
        *,
        retryable: bool = False,
        status_code: int | None = None,
        body: dict | None = None,
    ) -> None:
        self.detail = detail
        self.retryable = retryable
        self.status_code = status_code
        self.body = body or {}
        super().__init__(detail)


@dataclass(frozen=True)
class SendResult:
    """Outcome of one adapter ``send`` call."""

    message_id: str
    status: str


def template_params(context_data: Mapping[str, str]) -> dict[str, str]:
    """Return *context_data* without ``_``-prefixed routing hints."""
    return {k: v for k, v in context_data.items() if not k.startswith("_")}


class ChannelAdapter(abc.ABC):
    """Base class for all channel adapters.

    Subclasses set :attr:`channel` and implement :meth:`send`.
    """

    channel: Channel

    def __init__(self, timeout_seconds: int = 10) -> None:
        self._timeout_seconds = timeout_seconds

    @abc.abstractmethod
    def send(
        self,
        user_id: str,
        subject: str | None,
        body: str,
        context_data: Mapping[str, str],
        template_name: str | None = None,
    ) -> SendResult:
        """Deliver one message.

        Raises
        ------
        ChannelError
            If the provider fails or rejects the message.

        """

    # -- HTTP helpers -------------------------------------------------------

    def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: Mapping[str, str],
    ) -> dict[str, Any]:
        """POST *payload* as JSON and return the decoded JSON response.

        Non-JSON success bodies decode to ``{}``.
        """
        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(  # noqa: S310
            url,
            data=data,
            method="POST",
            headers={"Content-Type": "application/json", **headers},
        )

        try:
            resp = urllib.request.urlopen(req, timeout=self._timeout_seconds)  # noqa: S310
        except urllib.error.HTTPError as exc:
            text = ""
            with contextlib.suppress(Exception):
                text = exc.read().decode("utf-8", errors="replace")[:1000]
            parsed: dict = {}
            with contextlib.suppress(ValueError):
                loaded = json.loads(text) if text else {}
                parsed = loaded if isinstance(loaded, dict) else {}
            msg = f"{self.channel} provider returned HTTP {exc.code}: {text}"
            raise ChannelError(
                msg,
                retryable=exc.code >= 500,
                status_code=exc.code,
                body=parsed,
            ) from exc
        except (urllib.error.URLError, OSError) as exc:
            msg = f"Failed to reach {self.channel} provider at {url}: {exc}"
            raise ChannelError(
                msg,
                retryable=True,
            ) from exc

        raw = resp.read().decode("utf-8", errors="replace")
        if not raw:
            return {}
        try:
            decoded = json.loads(raw)
        except ValueError:
            log.debug("%s provider returned a non-JSON body", self.channel)
            return {}
        return decoded if isinstance(decoded, dict) else {}
