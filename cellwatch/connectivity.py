from __future__ import annotations

import logging
import socket
from typing import Callable

import requests

logger = logging.getLogger("cellwatch.connectivity")

TcpProbe = Callable[[str, int, float], bool]


class ConnectivityProber:
    """Reachability checks used to tell "no internet" apart from "collector down".

    Both probes always resolve to a bool; nothing raises past this boundary.
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        probe_host: str = "8.8.8.8",
        probe_port: int = 53,
        probe_timeout_s: float = 2.0,
        connect_timeout_s: float = 5.0,
        read_timeout_s: float = 5.0,
        tcp_probe: TcpProbe | None = None,
    ) -> None:
        self.session = session or requests.Session()
        self.probe_host = probe_host
        self.probe_port = int(probe_port)
        self.probe_timeout_s = float(probe_timeout_s)
        self.connect_timeout_s = float(connect_timeout_s)
        self.read_timeout_s = float(read_timeout_s)
        self._tcp_probe = tcp_probe or _default_tcp_probe

    def probe_external(self, host: str | None = None) -> bool:
        target = host or self.probe_host
        try:
            ok = bool(self._tcp_probe(target, self.probe_port, self.probe_timeout_s))
        except Exception as exc:
            logger.debug("external probe %s raised %r", target, exc)
            ok = False
        logger.debug("external probe host=%s ok=%s", target, ok)
        return ok

    def probe_collector_health(self, url: str) -> bool:
        try:
            resp = self.session.get(url, timeout=(self.connect_timeout_s, self.read_timeout_s))
        except requests.RequestException as exc:
            logger.debug("health probe %s failed: %r", url, exc)
            return False
        except Exception as exc:
            logger.warning("health probe %s raised unexpectedly: %r", url, exc)
            return False
        ok = resp.status_code == 200
        logger.debug("health probe url=%s status=%s", url, resp.status_code)
        return ok


def _default_tcp_probe(host: str, port: int, timeout_s: float) -> bool:
    try:
        with socket.create_connection((host, port), timeout=max(0.1, float(timeout_s))):
            return True
    except OSError:
        return False
