"""
Health verification for rendered record pages.

A new record's page is fetched a few times with a fixed delay before every
attempt (the render path needs time to settle after creation). The first
passing attempt wins; if all fail, one HealthAlert is stored.
"""
import logging
import re
import time
from dataclasses import asdict, dataclass, field
from enum import Enum

import requests
from django.conf import settings
from django.utils import timezone

from .models import HealthAlert

logger = logging.getLogger(__name__)

_TITLE_RE = re.compile(r"<title[^>]*>\s*([^<]*?)\s*</title>", re.IGNORECASE)


@dataclass(frozen=True)
class HealthCheckConfig:
    delay_seconds: float = 45
    max_attempts: int = 3
    min_bytes: int = 5000
    timeout: float = 20
    user_agent: str = "Record-Health-Monitor/1.0"
    shell_markers: tuple = ("flutter_bootstrap.js", "_flutter.loader.load")
    config_marker: str = "_flutter.buildConfig"

    @classmethod
    def from_settings(cls):
        return cls(
            delay_seconds=settings.HEALTH_CHECK_DELAY_SECONDS,
            max_attempts=settings.HEALTH_CHECK_MAX_ATTEMPTS,
            min_bytes=settings.HEALTH_CHECK_MIN_BYTES,
            timeout=settings.HEALTH_CHECK_TIMEOUT_SECONDS,
            user_agent=settings.HEALTH_CHECK_USER_AGENT,
            shell_markers=tuple(settings.HEALTH_CHECK_SHELL_MARKERS),
            config_marker=settings.HEALTH_CHECK_CONFIG_MARKER,
        )


@dataclass(frozen=True)
class CheckResult:
    success: bool
    error: str | None = None
    message: str = ""
    status: int | None = None
    size: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def record_page_url(record_id: str) -> str:
    return f"{settings.SITE_BASE_URL}/record/{record_id}"


def check_page(url: str, config: HealthCheckConfig, session=None) -> CheckResult:
    """Fetch ``url`` once and decide whether it is a fully rendered page for a record."""
    http = session or requests
    try:
        resp = http.get(url, headers={"User-Agent": config.user_agent}, timeout=config.timeout)
    except requests.RequestException as exc:
        return CheckResult(success=False, error=f"Fetch error: {exc}")

    if not resp.ok:
        return CheckResult(success=False, error=f"HTTP {resp.status_code}: {resp.reason}", status=resp.status_code)

    size = len(resp.content)
    body = resp.text
    if size < config.min_bytes:
        return CheckResult(
            success=False,
            error=f"Page too small: {size} bytes - likely blank page or error",
            status=resp.status_code,
            size=size,
        )
    if config.shell_markers and not any(m in body for m in config.shell_markers):
        return CheckResult(
            success=False,
            error="No client bootstrap detected - page may be showing error or fallback content",
            status=resp.status_code,
            size=size,
        )
    if config.config_marker and config.config_marker not in body:
        return CheckResult(
            success=False,
            error="No client build config detected - app may not be properly configured",
            status=resp.status_code,
            size=size,
        )
    match = _TITLE_RE.search(body)
    if not match or not match.group(1):
        return CheckResult(
            success=False,
            error="No record title detected - page render may have failed to load record data",
            status=resp.status_code,
            size=size,
        )
    return CheckResult(
        success=True,
        message="Record page loaded with client app and injected metadata",
        status=resp.status_code,
        size=size,
    )


class State(str, Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass
class Verification:
    url: str
    state: State = State.PENDING
    attempt_log: list = field(default_factory=list)
    success_attempt: int | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.state is State.SUCCESS


class HealthVerifier:
    """
    Bounded retry loop over ``check``: Pending -> Attempting -> Success | Exhausted.

    ``sleep`` is the only clock the verifier touches; tests pass a recorder.
    """

    def __init__(self, config: HealthCheckConfig | None = None, check=None, sleep=time.sleep):
        self.config = config or HealthCheckConfig.from_settings()
        self.check = check or (lambda url: check_page(url, self.config))
        self.sleep = sleep

    def verify(self, url: str) -> Verification:
        verification = Verification(url=url)
        last_error = None
        for attempt in range(1, self.config.max_attempts + 1):
            logger.info("Waiting %ss before attempt %d/%d for %s",
                        self.config.delay_seconds, attempt, self.config.max_attempts, url)
            self.sleep(self.config.delay_seconds)

            verification.state = State.ATTEMPTING
            result = self.check(url)
            verification.attempt_log.append({
                "attempt": attempt,
                "timestamp": timezone.now().isoformat(),
                "success": result.success,
                "error": result.error,
            })
            if result.success:
                logger.info("Page check for %s passed on attempt %d", url, attempt)
                verification.state = State.SUCCESS
                verification.success_attempt = attempt
                return verification

            last_error = result.error
            logger.warning("Attempt %d/%d for %s failed: %s", attempt, self.config.max_attempts, url, last_error)

        verification.state = State.EXHAUSTED
        verification.error = f"Failed after {self.config.max_attempts} attempts. Last error: {last_error}"
        return verification


def verify_and_alert(record_id: str, url: str | None = None, verifier: HealthVerifier | None = None):
    """
    Run the verifier for one record; on exhaustion store exactly one HealthAlert.
    Returns (verification, alert_or_None).
    """
    url = url or record_page_url(record_id)
    verification = (verifier or HealthVerifier()).verify(url)
    if verification.success:
        return verification, None

    logger.error("Page check for record %s exhausted: %s", record_id, verification.error)
    alert = HealthAlert.objects.create(
        record_id=record_id,
        target_url=url,
        error=verification.error,
        attempt_log=verification.attempt_log,
        source=HealthAlert.Source.MONITOR,
    )
    return verification, alert
