"""Fake ``httpx.Client`` for exercising webhook and REST adapters."""

from __future__ import annotations

import dataclasses
import typing as typ

import httpx

if typ.TYPE_CHECKING:
    import pytest

__all__ = ["HttpRecorder", "install_client"]

Handler = typ.Callable[[httpx.Request], "httpx.Response | Exception"]


@dataclasses.dataclass(slots=True)
class HttpRecorder:
    """Requests seen by the fake client and the options it was built with."""

    requests: list[httpx.Request] = dataclasses.field(default_factory=list)
    client_kwargs: list[dict[str, object]] = dataclasses.field(default_factory=list)


def install_client(monkeypatch: pytest.MonkeyPatch, handler: Handler) -> HttpRecorder:
    """Replace ``httpx.Client`` with a stub that delegates to ``handler``."""
    recorder = HttpRecorder()

    class FakeClient:
        def __init__(self, *args: object, **kwargs: object) -> None:
            recorder.client_kwargs.append(kwargs)

        def __enter__(self) -> FakeClient:
            return self

        def __exit__(
            self,
            exc_type: type[BaseException] | None,
            exc: BaseException | None,
            traceback: object,
        ) -> bool:
            return False

        def _send(self, method: str, url: str, **kwargs: typ.Any) -> httpx.Response:  # noqa: ANN401
            request = httpx.Request(method, url, **kwargs)
            recorder.requests.append(request)
            result = handler(request)
            if isinstance(result, Exception):
                raise result
            return result

        def get(self, url: str, **kwargs: typ.Any) -> httpx.Response:  # noqa: ANN401
            return self._send("GET", url, **kwargs)

        def post(self, url: str, **kwargs: typ.Any) -> httpx.Response:  # noqa: ANN401
            return self._send("POST", url, **kwargs)

        def put(self, url: str, **kwargs: typ.Any) -> httpx.Response:  # noqa: ANN401
            return self._send("PUT", url, **kwargs)

    monkeypatch.setattr(httpx, "Client", FakeClient)
    return recorder
