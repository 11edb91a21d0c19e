import logging
from dataclasses import dataclass

import sounddevice as sd

from live_transcriber.adapters.websocket_connection import probe_connection
from live_transcriber.config import TranscriberConfig
from live_transcriber.domain.settings import normalize_server_url

logger = logging.getLogger(__name__)

CRITICAL_CHECKS = {"audio_device"}


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


async def run_startup_checks(config: TranscriberConfig) -> list[HealthCheckResult]:
    results = [
        _check_audio_device(config),
        _check_server_url(config),
        await _check_server_reachable(config),
    ]

    passed = sum(1 for r in results if r.passed)
    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    return any(not r.passed and r.name in CRITICAL_CHECKS for r in results)


def _check_audio_device(config: TranscriberConfig) -> HealthCheckResult:
    name = "audio_device"
    try:
        devices = sd.query_devices()
    except sd.PortAudioError as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))

    inputs = [dev for dev in devices if dev["max_input_channels"] > 0]
    if not inputs:
        return HealthCheckResult(name=name, passed=False, detail="No input devices available")

    wanted = config.capture_device
    if not wanted:
        return HealthCheckResult(name=name, passed=True, detail=f"{len(inputs)} input device(s), using default")
    if wanted.isdigit():
        return HealthCheckResult(name=name, passed=True, detail=f"Using device index {wanted}")
    for dev in inputs:
        if wanted.lower() in dev["name"].lower():
            return HealthCheckResult(name=name, passed=True, detail=f"Device '{dev['name']}' found")
    return HealthCheckResult(name=name, passed=False, detail=f"No input device matching '{wanted}'")


def _check_server_url(config: TranscriberConfig) -> HealthCheckResult:
    name = "server_url"
    normalized = normalize_server_url(config.server_url)
    if normalized != config.server_url:
        return HealthCheckResult(
            name=name,
            passed=False,
            detail=f"'{config.server_url}' is not a WebSocket URL, using {normalized}",
        )
    return HealthCheckResult(name=name, passed=True, detail=normalized)


async def _check_server_reachable(config: TranscriberConfig) -> HealthCheckResult:
    name = "server_reachable"
    url = normalize_server_url(config.server_url)
    if await probe_connection(url, timeout=config.probe_timeout_s):
        return HealthCheckResult(name=name, passed=True, detail=f"{url} accepted a connection")
    return HealthCheckResult(name=name, passed=False, detail=f"{url} did not accept a connection")
