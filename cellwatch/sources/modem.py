from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from typing import Callable, Dict, List

from ..sample import INVALID_CELL_ID, UNKNOWN_OPERATOR, CellKind, CellReading
from .base import PositionCallback

logger = logging.getLogger("cellwatch.sources.modem")

CommandRunner = Callable[[List[str], float], str | None]

_UNSET_VALUES = {"", "--", "unknown", "n/a"}

# Highest technology wins when the modem reports several (e.g. LTE anchor + NR).
_ACCESS_TECH_PRIORITY: tuple[tuple[CellKind, frozenset[str]], ...] = (
    (CellKind.NR, frozenset({"5gnr"})),
    (CellKind.LTE, frozenset({"lte", "lte-cat-m", "lte-nb-iot"})),
    (CellKind.WCDMA, frozenset({"umts", "hsdpa", "hsupa", "hspa", "hspa-plus"})),
    (CellKind.GSM, frozenset({"gsm", "gsm-compact", "gprs", "edge"})),
    (CellKind.CDMA, frozenset({"1xrtt", "evdo0", "evdoa", "evdob"})),
)


class ModemManagerSource:
    """Serving-cell and GPS readings from ModemManager's `mmcli`.

    Each read polls `--simple-status`, `--location-get` and `--signal-get` in
    key/value mode. Fields the modem does not report map onto the invalid
    sentinels so the assembler filters them.
    """

    def __init__(
        self,
        *,
        modem_id: str = "0",
        command_timeout_s: float = 3.0,
        signal_refresh_s: int = 5,
        command_runner: CommandRunner | None = None,
    ) -> None:
        self.modem_id = modem_id
        self.command_timeout_s = float(command_timeout_s)
        self.signal_refresh_s = int(signal_refresh_s)
        self._command_runner = command_runner or _run_command
        self._callbacks: List[PositionCallback] = []
        self._lock = threading.Lock()
        self._setup_done = False
        self._mmcli_available: bool | None = None

    def _is_mmcli_available(self) -> bool:
        if self._mmcli_available is None:
            self._mmcli_available = shutil.which("mmcli") is not None
        return bool(self._mmcli_available)

    def _run_mmcli(self, args: List[str]) -> Dict[str, str]:
        out = self._command_runner(
            ["mmcli", "-m", self.modem_id, *args, "--output-keyvalue"],
            self.command_timeout_s,
        )
        return parse_keyvalue(out or "")

    def _ensure_setup(self) -> None:
        if self._setup_done:
            return
        # Best-effort: enable the 3GPP/GPS location sources and signal polling.
        for args in (
            ["--location-enable-3gpp"],
            ["--location-enable-gps-raw"],
            [f"--signal-setup={self.signal_refresh_s}"],
        ):
            self._command_runner(["mmcli", "-m", self.modem_id, *args], self.command_timeout_s)
        self._setup_done = True

    def subscribe_positions(self, callback: PositionCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def read_cells(self) -> List[CellReading]:
        if not self._is_mmcli_available():
            return []
        self._ensure_setup()

        status = self._run_mmcli(["--simple-status"])
        location = self._run_mmcli(["--location-get"])
        signal = self._run_mmcli(["--signal-get"])
        if not (status or location):
            return []

        fix = _parse_gps_fix(location)
        if fix is not None:
            with self._lock:
                callbacks = list(self._callbacks)
            for cb in callbacks:
                cb(*fix)

        reading = build_serving_cell_reading(status=status, location=location, signal=signal)
        return [reading] if reading is not None else []

    def close(self) -> None:
        with self._lock:
            self._callbacks.clear()


def parse_keyvalue(payload: str) -> Dict[str, str]:
    """Parse `mmcli --output-keyvalue` lines ("key : value" or "key=value")."""

    out: Dict[str, str] = {}
    for raw_line in payload.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if " : " in line:
            key, value = line.split(" : ", 1)
        elif "=" in line:
            key, value = line.split("=", 1)
        elif ":" in line:
            key, value = line.split(":", 1)
        else:
            continue
        out[key.strip()] = value.strip().strip("'\"")
    return out


def build_serving_cell_reading(
    *,
    status: Dict[str, str],
    location: Dict[str, str],
    signal: Dict[str, str],
) -> CellReading | None:
    kind = _parse_access_technology(status)
    if kind is None:
        return None

    if kind.uses_tracking_area:
        area_code = _parse_hex(location.get("modem.location.3gpp.tac"))
    else:
        area_code = _parse_hex(location.get("modem.location.3gpp.lac"))

    cell_id = _parse_hex(location.get("modem.location.3gpp.cid"))

    signal_dbm: int | None
    rsrp = rsrq = None
    if kind is CellKind.LTE:
        rsrp = _parse_dbm(_signal_value(signal, "modem.signal.lte.rsrp"))
        rsrq = _parse_dbm(_signal_value(signal, "modem.signal.lte.rsrq"))
        signal_dbm = rsrp
    elif kind is CellKind.NR:
        signal_dbm = _parse_dbm(_signal_value(signal, "modem.signal.nr5g.rsrp"))
    elif kind is CellKind.WCDMA:
        signal_dbm = _parse_dbm(_signal_value(signal, "modem.signal.umts.rscp"))
        if signal_dbm is None:
            signal_dbm = _parse_dbm(_signal_value(signal, "modem.signal.umts.rssi"))
    elif kind is CellKind.GSM:
        signal_dbm = _parse_dbm(_signal_value(signal, "modem.signal.gsm.rssi"))
    else:
        signal_dbm = _parse_dbm(_signal_value(signal, "modem.signal.cdma1x.rssi"))

    return CellReading(
        kind=kind,
        cell_id=cell_id if cell_id is not None else INVALID_CELL_ID,
        area_code=area_code if area_code is not None else 0,
        operator=_parse_operator(status, location),
        signal_dbm=signal_dbm,
        rsrp=rsrp,
        rsrq=rsrq,
    )


def _is_set(value: str | None) -> bool:
    return value is not None and value.strip().lower() not in _UNSET_VALUES


def _signal_value(signal: Dict[str, str], key: str) -> str | None:
    # Newer mmcli releases suffix signal keys with ".value".
    value = signal.get(f"{key}.value")
    return value if _is_set(value) else signal.get(key)


def _parse_access_technology(status: Dict[str, str]) -> CellKind | None:
    techs: set[str] = set()
    for key, value in status.items():
        if not key.startswith("modem.generic.access-technologies"):
            continue
        for part in value.split(","):
            if _is_set(part):
                techs.add(part.strip().lower())

    for kind, names in _ACCESS_TECH_PRIORITY:
        if techs & names:
            return kind
    return None


def _parse_operator(status: Dict[str, str], location: Dict[str, str]) -> str:
    code = status.get("modem.3gpp.operator-code")
    if _is_set(code):
        return str(code).strip()

    mcc = location.get("modem.location.3gpp.mcc")
    mnc = location.get("modem.location.3gpp.mnc")
    if _is_set(mcc) and _is_set(mnc):
        return f"{str(mcc).strip()}{str(mnc).strip()}"
    return UNKNOWN_OPERATOR


def _parse_hex(value: str | None) -> int | None:
    if not _is_set(value):
        return None
    try:
        return int(str(value).strip(), 16)
    except ValueError:
        return None


def _parse_dbm(value: str | None) -> int | None:
    if not _is_set(value):
        return None
    token = str(value).strip().split()[0]
    try:
        return int(round(float(token)))
    except ValueError:
        return None


def _parse_gps_fix(location: Dict[str, str]) -> tuple[float, float] | None:
    lat = location.get("modem.location.gps.latitude")
    lon = location.get("modem.location.gps.longitude")
    if not (_is_set(lat) and _is_set(lon)):
        return None
    try:
        return float(str(lat)), float(str(lon))
    except ValueError:
        return None


def _run_command(command: List[str], timeout_s: float) -> str | None:
    try:
        proc = subprocess.run(
            command,
            check=False,
            capture_output=True,
            text=True,
            timeout=max(0.1, float(timeout_s)),
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None

    if proc.returncode != 0:
        logger.debug("command failed rc=%s: %s", proc.returncode, " ".join(command))
        return None
    return proc.stdout.strip()
