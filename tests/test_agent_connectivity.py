from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
import requests

from cellwatch.connectivity import ConnectivityProber


class _Session:
    def __init__(self, result: Any) -> None:
        self.result = result
        self.calls: list[tuple[str, Any]] = []

    def get(self, url: str, timeout: Any = None) -> SimpleNamespace:
        self.calls.append((url, timeout))
        if isinstance(self.result, Exception):
            raise self.result
        return SimpleNamespace(status_code=self.result)


def test_external_reachability_uses_configured_host_and_port() -> None:
    seen: list[tuple[str, int, float]] = []

    def tcp_probe(host: str, port: int, timeout_s: float) -> bool:
        seen.append((host, port, timeout_s))
        return True

    prober = ConnectivityProber(session=_Session(200), probe_host="1.1.1.1", probe_port=443, tcp_probe=tcp_probe)

    assert prober.probe_external() is True
    assert prober.probe_external("9.9.9.9") is True
    assert seen == [("1.1.1.1", 443, 2.0), ("9.9.9.9", 443, 2.0)]


def test_external_reachability_never_raises() -> None:
    def tcp_probe(host: str, port: int, timeout_s: float) -> bool:
        raise RuntimeError("resolver exploded")

    prober = ConnectivityProber(session=_Session(200), tcp_probe=tcp_probe)

    assert prober.probe_external() is False


@pytest.mark.parametrize(
    ("result", "expected"),
    [
        (200, True),
        (204, False),
        (503, False),
        (requests.ConnectionError("refused"), False),
        (requests.Timeout("slow"), False),
        (ValueError("bad url"), False),
    ],
)
def test_collector_health_is_true_only_for_http_200(result: Any, expected: bool) -> None:
    session = _Session(result)
    prober = ConnectivityProber(session=session, connect_timeout_s=1.5, read_timeout_s=2.5)  # type: ignore[arg-type]

    assert prober.probe_collector_health("http://collector.test/api/health") is expected
    assert session.calls == [("http://collector.test/api/health", (1.5, 2.5))]
