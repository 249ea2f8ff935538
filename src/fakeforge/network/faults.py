"""
FakeForge Fault Injection

Simulated network misbehaviour for mock responses.

A FaultProfile is resolved once per configuration (preset values first,
then top-level overrides). The FaultInjector answers "what should happen to
this request" from that profile. Callers apply it in this order:

1. ``is_offline()``: respond 503 immediately, without delay
2. ``await wait()``: apply latency
3. ``should_timeout()``: leave the request hanging
4. ``should_error()``: respond with ``resolve_fault_response("error")``
5. otherwise generate data
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

logger = logging.getLogger("fakeforge.network")

Delay = Union[int, float, Tuple[float, float]]

OFFLINE_STATUS = 503
OFFLINE_MESSAGE = "Network offline"
DEFAULT_ERROR_STATUS = 500
DEFAULT_ERROR_MESSAGE = "Network error"


def _clamp_rate(name: str, value: Any) -> float:
    try:
        rate = float(value or 0)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name} {value!r}; using 0")
        return 0.0
    if rate < 0 or rate > 1:
        clamped = min(max(rate, 0.0), 1.0)
        logger.warning(f"{name} {rate} outside [0, 1]; clamped to {clamped}")
        return clamped
    return rate


def _normalize_delay(value: Any) -> Delay:
    if value is None:
        return 0
    if isinstance(value, (list, tuple)):
        if len(value) != 2:
            logger.warning(f"Delay range must have two values, got {value!r}; ignoring")
            return 0
        low, high = float(value[0]), float(value[1])
        return (min(low, high), max(low, high))
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        logger.warning(f"Invalid delay {value!r}; ignoring")
        return 0


@dataclass(frozen=True)
class FaultResponse:
    """Status and message for a simulated failure."""

    status: int
    message: str


@dataclass(frozen=True)
class FaultProfile:
    """
    Configured fault parameters for one serving configuration.

    Attributes:
        delay: Fixed delay in ms, or a (min, max) range in ms
        error_rate: Probability (0.0-1.0) of a simulated error response
        timeout_rate: Probability (0.0-1.0) of a simulated hang
        offline: Respond 503 to every request
        error_status_codes: Status codes picked from for simulated errors
        error_messages: Message per status code
    """

    delay: Delay = 0
    error_rate: float = 0.0
    timeout_rate: float = 0.0
    offline: bool = False
    error_status_codes: Tuple[int, ...] = ()
    error_messages: Mapping[int, str] = field(default_factory=dict)

    @classmethod
    def from_options(cls, options: Optional[Dict[str, Any]] = None) -> 'FaultProfile':
        """
        Build a profile from the ``network`` configuration section.

        When ``preset`` names an entry of ``presets``, that entry supplies
        the base values and the top-level keys override them.

        Args:
            options: Network options dictionary

        Returns:
            Resolved FaultProfile
        """
        options = dict(options or {})
        preset_name = options.pop('preset', None)
        presets = options.pop('presets', None) or {}

        merged: Dict[str, Any] = {}
        if preset_name:
            if preset_name in presets:
                merged.update(presets[preset_name] or {})
            else:
                logger.warning(f"Unknown network preset '{preset_name}'")
        merged.update(options)

        messages = {
            int(status): str(message)
            for status, message in (merged.get('error_messages') or {}).items()
        }

        return cls(
            delay=_normalize_delay(merged.get('delay')),
            error_rate=_clamp_rate('error_rate', merged.get('error_rate')),
            timeout_rate=_clamp_rate('timeout_rate', merged.get('timeout_rate')),
            offline=bool(merged.get('offline', False)),
            error_status_codes=tuple(int(code) for code in merged.get('error_status_codes') or ()),
            error_messages=messages,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'delay': list(self.delay) if isinstance(self.delay, tuple) else self.delay,
            'error_rate': self.error_rate,
            'timeout_rate': self.timeout_rate,
            'offline': self.offline,
            'error_status_codes': list(self.error_status_codes),
            'error_messages': {str(k): v for k, v in self.error_messages.items()},
        }


class FaultInjector:
    """
    Decides which simulated fault, if any, applies to a request.

    Stateless apart from its random source.

    Example:
        injector = FaultInjector(FaultProfile(delay=(200, 400), error_rate=0.1))
        if injector.is_offline():
            ...
        await injector.wait()
    """

    def __init__(self, profile: Optional[FaultProfile] = None, rng: Optional[random.Random] = None):
        """
        Initialize fault injector.

        Args:
            profile: Fault profile (defaults to no faults)
            rng: Random source for probability draws and delay ranges
        """
        self.profile = profile or FaultProfile()
        self.rng = rng or random.Random()

    def should_timeout(self) -> bool:
        """Bernoulli draw with the profile's timeout rate."""
        occurred = self._chance(self.profile.timeout_rate)
        if occurred:
            logger.debug("Network timeout...")
        return occurred

    def should_error(self) -> bool:
        """Bernoulli draw with the profile's error rate."""
        occurred = self._chance(self.profile.error_rate)
        if occurred:
            logger.debug("Network error...")
        return occurred

    def is_offline(self) -> bool:
        return self.profile.offline

    def resolve_fault_response(self, kind: str) -> FaultResponse:
        """
        Status and message for a simulated failure.

        Args:
            kind: "offline" or "error"

        Returns:
            FaultResponse to send to the caller
        """
        if kind == "offline":
            return FaultResponse(OFFLINE_STATUS, OFFLINE_MESSAGE)
        if kind == "error":
            codes = self.profile.error_status_codes
            status = self.rng.choice(codes) if codes else DEFAULT_ERROR_STATUS
            return FaultResponse(status, self.profile.error_messages.get(status, DEFAULT_ERROR_MESSAGE))
        return FaultResponse(DEFAULT_ERROR_STATUS, "Unknown error")

    def resolve_delay(self) -> int:
        """Delay in whole milliseconds for one request."""
        delay = self.profile.delay
        if isinstance(delay, tuple):
            low, high = delay
            return int(round(self.rng.uniform(low, high)))
        return int(round(delay or 0))

    async def wait(self) -> int:
        """
        Suspend for the configured delay.

        Returns:
            The applied delay in milliseconds (0 when nothing was applied)
        """
        delay = self.resolve_delay()
        if delay > 0:
            logger.debug(f"Network waiting ({delay} ms)...")
            await asyncio.sleep(delay / 1000)
        return delay

    def header_value(self) -> str:
        """Value for the network diagnostic response header."""
        delay = self.profile.delay
        delay_text = f"{delay[0]:g}-{delay[1]:g}" if isinstance(delay, tuple) else f"{delay:g}"
        offline = 'true' if self.profile.offline else 'false'
        return (
            f"delay={delay_text},error={self.profile.error_rate:g},"
            f"timeout={self.profile.timeout_rate:g},offline={offline}"
        )

    def _chance(self, rate: float) -> bool:
        return self.rng.random() < rate
