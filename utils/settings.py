"""Environment-driven configuration for the chat agent."""

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/118 Safari/537.36"
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name}={raw!r} is not a number") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name}={raw!r} is not an integer") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise RuntimeError(f"{name}={raw!r} is not a boolean")


@dataclass(frozen=True)
class Settings:
    """Runtime settings.

    Attributes:
        whatsapp_url: Chat application entry URL.
        session_file: Where the browser storage state (session blob) lives.
        proof_dir: Directory for login proof screenshots.
        headless: Launch the browser without a window.
        user_agent: User agent presented by the browser context.
        login_poll_seconds: Interval between login probes while waiting for a scan.
        qr_timeout_seconds: Startup window for the QR code to render.
        input_timeout_seconds: Bounded wait for the message input before sending.
        transcript_limit: Number of most recent messages passed to the oracle (0 = all).
        openai_model: Model used for replies.
        oracle_timeout_seconds: Per-call oracle timeout; None waits forever.
        human_pacing: Insert random human-like pauses between browser actions.
        typing_delay_ms: Per-key typing delay.
        watch_retry_attempts: Watcher install attempts after login.
        watch_retry_seconds: Pause between watcher install attempts.
        host: HTTP bind host.
        port: HTTP bind port.
        log_level: Root logging level name.
    """

    whatsapp_url: str = "https://web.whatsapp.com"
    session_file: str = "./dist/--bot-session--/session.json"
    proof_dir: str = "./dist/--session-proof--"
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    login_poll_seconds: float = 2.0
    qr_timeout_seconds: float = 60.0
    input_timeout_seconds: float = 10.0
    transcript_limit: int = 20
    openai_model: str = "gpt-5"
    oracle_timeout_seconds: Optional[float] = 60.0
    human_pacing: bool = True
    typing_delay_ms: int = 50
    watch_retry_attempts: int = 5
    watch_retry_seconds: float = 3.0
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build `Settings` from the environment, falling back to defaults."""
    defaults = Settings()
    oracle_timeout = _env_float("ORACLE_TIMEOUT_SECONDS", defaults.oracle_timeout_seconds or 0.0)
    return Settings(
        whatsapp_url=_env_str("WHATSAPP_URL", defaults.whatsapp_url),
        session_file=_env_str("SESSION_FILE", defaults.session_file),
        proof_dir=_env_str("PROOF_DIR", defaults.proof_dir),
        headless=_env_bool("HEADLESS", defaults.headless),
        user_agent=_env_str("BROWSER_USER_AGENT", defaults.user_agent),
        login_poll_seconds=_env_float("LOGIN_POLL_SECONDS", defaults.login_poll_seconds),
        qr_timeout_seconds=_env_float("QR_TIMEOUT_SECONDS", defaults.qr_timeout_seconds),
        input_timeout_seconds=_env_float("INPUT_TIMEOUT_SECONDS", defaults.input_timeout_seconds),
        transcript_limit=_env_int("TRANSCRIPT_LIMIT", defaults.transcript_limit),
        openai_model=_env_str("OPENAI_MODEL", defaults.openai_model),
        oracle_timeout_seconds=oracle_timeout if oracle_timeout > 0 else None,
        human_pacing=_env_bool("HUMAN_PACING", defaults.human_pacing),
        typing_delay_ms=_env_int("TYPING_DELAY_MS", defaults.typing_delay_ms),
        watch_retry_attempts=_env_int("WATCH_RETRY_ATTEMPTS", defaults.watch_retry_attempts),
        watch_retry_seconds=_env_float("WATCH_RETRY_SECONDS", defaults.watch_retry_seconds),
        host=_env_str("HOST", defaults.host),
        port=_env_int("PORT", defaults.port),
        log_level=_env_str("LOG_LEVEL", defaults.log_level).upper(),
    )
