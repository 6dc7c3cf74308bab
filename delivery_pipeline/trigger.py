"""Translate version-control webhook payloads into :class:`TriggerEvent`.

Bitbucket and GitHub both deliver push and pull request notifications as
JSON. Only the branch reference, the head commit and the repository name are
needed to start a run, so everything else in the payload is ignored.
"""

from __future__ import annotations

import json
import typing as typ
from pathlib import Path

from .errors import ConfigurationError
from .models import TriggerEvent, TriggerKind

__all__ = ["load_trigger", "manual_trigger", "parse_trigger"]

type JsonValue = (
    str | int | float | bool | None | list[JsonValue] | dict[str, JsonValue]
)

_BRANCH_PREFIX = "refs/heads/"


def _dig(payload: object, *keys: str | int) -> object:
    """Return the value at ``keys`` or ``None`` when any step is missing."""
    current = payload
    for key in keys:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
    return current


def _text(value: object) -> str | None:
    if isinstance(value, str) and (stripped := value.strip()):
        return stripped
    return None


def _bitbucket_push(payload: dict[str, JsonValue]) -> TriggerEvent | None:
    changes = _dig(payload, "push", "changes")
    if not isinstance(changes, list) or not changes:
        return None
    new = _dig(changes, -1, "new")
    if _dig(new, "type") not in (None, "branch"):
        return None
    branch = _text(_dig(new, "name"))
    if branch is None:
        return None
    return TriggerEvent(
        kind=TriggerKind.PUSH,
        branch=branch,
        commit=_text(_dig(new, "target", "hash")),
        repository=_text(_dig(payload, "repository", "full_name")),
    )


def _bitbucket_pull_request(payload: dict[str, JsonValue]) -> TriggerEvent | None:
    source = _dig(payload, "pullrequest", "source")
    branch = _text(_dig(source, "branch", "name"))
    if branch is None:
        return None
    return TriggerEvent(
        kind=TriggerKind.PULL_REQUEST,
        branch=branch,
        commit=_text(_dig(source, "commit", "hash")),
        repository=_text(_dig(payload, "repository", "full_name")),
    )


def _github_push(payload: dict[str, JsonValue]) -> TriggerEvent | None:
    ref = _text(_dig(payload, "ref"))
    if ref is None or not ref.startswith(_BRANCH_PREFIX):
        return None
    return TriggerEvent(
        kind=TriggerKind.PUSH,
        branch=ref.removeprefix(_BRANCH_PREFIX),
        commit=_text(_dig(payload, "after")),
        repository=_text(_dig(payload, "repository", "full_name")),
    )


def _github_pull_request(payload: dict[str, JsonValue]) -> TriggerEvent | None:
    head = _dig(payload, "pull_request", "head")
    branch = _text(_dig(head, "ref"))
    if branch is None:
        return None
    return TriggerEvent(
        kind=TriggerKind.PULL_REQUEST,
        branch=branch,
        commit=_text(_dig(head, "sha")),
        repository=_text(_dig(payload, "repository", "full_name")),
    )


_Parser = typ.Callable[[dict[str, JsonValue]], TriggerEvent | None]

# Event header values (X-Event-Key / X-GitHub-Event) mapped to parsers.
_PARSERS_BY_KEY: dict[str, _Parser] = {
    "repo:push": _bitbucket_push,
    "pullrequest:created": _bitbucket_pull_request,
    "pullrequest:updated": _bitbucket_pull_request,
    "push": _github_push,
    "pull_request": _github_pull_request,
}

# Tried in order when no event key is supplied.
_PAYLOAD_PARSERS: tuple[_Parser, ...] = (
    _bitbucket_push,
    _bitbucket_pull_request,
    _github_pull_request,
    _github_push,
)


def parse_trigger(
    payload: dict[str, JsonValue], *, event_key: str | None = None
) -> TriggerEvent:
    """Return the :class:`TriggerEvent` described by ``payload``.

    Parameters
    ----------
    payload
        Decoded webhook body.
    event_key
        Value of the ``X-Event-Key`` (Bitbucket) or ``X-GitHub-Event`` header.
        When omitted the payload shape decides.

    Raises
    ------
    ConfigurationError
        Raised when the event is unsupported or carries no branch reference.
    """
    if event_key is not None:
        key = event_key.strip()
        parser = _PARSERS_BY_KEY.get(key)
        if parser is None:
            msg = f"Unsupported webhook event '{key}'"
            raise ConfigurationError(msg)
        parsers: tuple[_Parser, ...] = (parser,)
    else:
        parsers = _PAYLOAD_PARSERS

    for parser in parsers:
        if (event := parser(payload)) is not None:
            return event
    msg = "Webhook payload does not reference a branch"
    raise ConfigurationError(msg)


def load_trigger(event_file: Path, *, event_key: str | None = None) -> TriggerEvent:
    """Read a webhook payload from ``event_file`` and parse it."""
    path = Path(event_file)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        msg = f"Event payload not found at {path}"
        raise ConfigurationError(msg) from exc
    except json.JSONDecodeError as exc:
        msg = f"Failed to parse event payload: {exc}"
        raise ConfigurationError(msg) from exc
    if not isinstance(payload, dict):
        msg = "Event payload must be a JSON object"
        raise ConfigurationError(msg)
    return parse_trigger(payload, event_key=event_key)


def manual_trigger(branch: str, commit: str | None = None) -> TriggerEvent:
    """Return a trigger for a run started by hand on ``branch``."""
    if not branch.strip():
        msg = "Branch name must not be empty"
        raise ConfigurationError(msg)
    return TriggerEvent(kind=TriggerKind.MANUAL, branch=branch.strip(), commit=commit)
