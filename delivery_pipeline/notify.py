"""Notification channels for terminal pipeline events.

The runner only knows the :class:`Notifier` protocol. Concrete channels post
to a Slack incoming webhook, open a Jira issue for failed runs, or echo to
the console; :class:`FanOutNotifier` combines several of them.
"""

from __future__ import annotations

import logging
import typing as typ

import httpx
import typer

from .errors import NotificationError
from .models import NotificationEvent, Severity

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .config import PipelineConfig, RegistryCredentials

__all__ = [
    "ConsoleNotifier",
    "FanOutNotifier",
    "JiraNotifier",
    "Notifier",
    "SlackNotifier",
    "build_notifier",
]

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 30

_SLACK_COLOURS = {
    Severity.INFO: "#439FE0",
    Severity.SUCCESS: "good",
    Severity.FAILURE: "danger",
}

_JIRA_SUMMARY_LIMIT = 250


@typ.runtime_checkable
class Notifier(typ.Protocol):
    """Channel accepting terminal pipeline events."""

    def notify(self, event: NotificationEvent) -> None:  # pragma: no cover - protocol
        """Deliver ``event``."""
        ...


def _raise_for_status(response: httpx.Response, service: str) -> None:
    if not response.is_success:
        msg = f"{service} rejected notification ({response.status_code}): {response.text}"
        raise NotificationError(msg)


class SlackNotifier:
    """Post events to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, *, timeout: float = HTTP_TIMEOUT) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout

    def payload(self, event: NotificationEvent) -> dict[str, object]:
        """Return the webhook body for ``event``."""
        return {
            "channel": event.channel,
            "text": event.message,
            "attachments": [
                {"color": _SLACK_COLOURS[event.severity], "text": event.message}
            ],
        }

    def notify(self, event: NotificationEvent) -> None:
        """Post ``event`` to the webhook.

        Raises
        ------
        NotificationError
            Raised when the webhook is unreachable or answers with an error.
        """
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.webhook_url, json=self.payload(event))
        except httpx.HTTPError as exc:
            msg = f"Slack webhook request failed: {exc}"
            raise NotificationError(msg) from exc
        _raise_for_status(response, "Slack")
        logger.info("Sent %s notification to %s", event.severity, event.channel)


class JiraNotifier:
    """Open a Jira bug for failed runs; other events are ignored."""

    def __init__(
        self,
        base_url: str,
        project: str,
        credentials: RegistryCredentials,
        *,
        issue_type: str = "Bug",
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.project = project
        self.credentials = credentials
        self.issue_type = issue_type
        self.timeout = timeout

    def payload(self, event: NotificationEvent) -> dict[str, object]:
        """Return the issue creation body for ``event``."""
        summary = event.message.splitlines()[0] if event.message else "Pipeline failed"
        if len(summary) > _JIRA_SUMMARY_LIMIT:
            summary = f"{summary[: _JIRA_SUMMARY_LIMIT - 3]}..."
        return {
            "fields": {
                "project": {"key": self.project},
                "summary": summary,
                "description": event.message,
                "issuetype": {"name": self.issue_type},
            }
        }

    def notify(self, event: NotificationEvent) -> None:
        """Create an issue when ``event`` reports a failure."""
        if event.severity is not Severity.FAILURE:
            return
        auth = (self.credentials.username, self.credentials.password)
        try:
            with httpx.Client(timeout=self.timeout, auth=auth) as client:
                response = client.post(
                    f"{self.base_url}/rest/api/2/issue", json=self.payload(event)
                )
        except httpx.HTTPError as exc:
            msg = f"Jira request failed: {exc}"
            raise NotificationError(msg) from exc
        _raise_for_status(response, "Jira")
        # The issue exists at this point; an odd body only loses its key.
        try:
            body = response.json()
        except ValueError:
            body = None
        key = body.get("key", "?") if isinstance(body, dict) else "?"
        logger.info("Opened Jira issue %s for failed run", key)


class ConsoleNotifier:
    """Echo events to the build log."""

    def notify(self, event: NotificationEvent) -> None:
        """Print ``event`` to stdout, or stderr for failures."""
        typer.echo(
            f"[{event.severity}] {event.channel}: {event.message}",
            err=event.severity is Severity.FAILURE,
        )


class FanOutNotifier:
    """Deliver each event to every wrapped notifier.

    Every delivery is attempted even when an earlier one fails; the first
    failure is re-raised once all notifiers have been tried.
    """

    def __init__(self, notifiers: cabc.Iterable[Notifier]) -> None:
        self.notifiers = tuple(notifiers)

    def notify(self, event: NotificationEvent) -> None:
        """Forward ``event`` to each notifier in turn."""
        first_error: Exception | None = None
        for notifier in self.notifiers:
            try:
                notifier.notify(event)
            except Exception as exc:  # noqa: BLE001 - re-raised below
                logger.warning("%s failed: %s", type(notifier).__name__, exc)
                first_error = first_error or exc
        if first_error is not None:
            raise first_error


def build_notifier(config: PipelineConfig) -> Notifier:
    """Return the notifier chain implied by ``config``.

    The console channel is always present. Slack is added when a webhook URL
    is configured, and Jira when its URL, project and credentials are all set.
    """
    notifiers: list[Notifier] = [ConsoleNotifier()]
    if config.slack_webhook_url:
        notifiers.append(SlackNotifier(config.slack_webhook_url))
    if config.jira_url and config.jira_project and config.jira_credentials:
        notifiers.append(
            JiraNotifier(config.jira_url, config.jira_project, config.jira_credentials)
        )
    return FanOutNotifier(notifiers)
