"""
reprompt_config.py — Tunable thresholds and backend selection for reprompt.

Every knob has a compiled-in default. Any of them can be overridden from the
environment (or a .env file, loaded by the CLI via python-dotenv):

    REPROMPT_BACKEND             auto | native | wsl
    REPROMPT_CLIPBOARD_TIMEOUT   seconds before a clipboard call counts as failed
    REPROMPT_MIN_KEEP_RATIO      minimum fraction of significant text a clean must keep
    REPROMPT_MOJIBAKE_MIN_SCORE  fraction of corrupted lines before recovery is tried
    REPROMPT_TABLE_PIPE_MIN      ASCII pipes on a line that mark it as a table row
    REPROMPT_LOG_FILE            optional path for an append-only debug log
"""
import logging
import os

log = logging.getLogger("reprompt_config")

BACKENDS = ("auto", "native", "wsl")

DEFAULT_BACKEND = "auto"
DEFAULT_CLIPBOARD_TIMEOUT = 5.0
DEFAULT_MIN_KEEP_RATIO = 0.5
DEFAULT_MOJIBAKE_MIN_SCORE = 0.05
DEFAULT_TABLE_PIPE_MIN = 3


def _env_float(env, name: str, default: float, low: float = 0.0, high: float = None) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        log.warning(f"{name}={raw!r} is not a number, using {default}")
        return default
    if value < low or (high is not None and value > high):
        log.warning(f"{name}={raw!r} out of range, using {default}")
        return default
    return value


def _env_int(env, name: str, default: int, low: int = 1) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning(f"{name}={raw!r} is not an integer, using {default}")
        return default
    if value < low:
        log.warning(f"{name}={raw!r} out of range, using {default}")
        return default
    return value


class Settings:
    def __init__(
        self,
        backend: str = DEFAULT_BACKEND,
        clipboard_timeout: float = DEFAULT_CLIPBOARD_TIMEOUT,
        min_keep_ratio: float = DEFAULT_MIN_KEEP_RATIO,
        mojibake_min_score: float = DEFAULT_MOJIBAKE_MIN_SCORE,
        table_pipe_min: int = DEFAULT_TABLE_PIPE_MIN,
        log_file: str = None,
    ):
        self.backend = backend
        self.clipboard_timeout = clipboard_timeout
        self.min_keep_ratio = min_keep_ratio
        self.mojibake_min_score = mojibake_min_score
        self.table_pipe_min = table_pipe_min
        self.log_file = log_file

    @classmethod
    def from_env(cls, env=None) -> "Settings":
        """Build settings from the environment, falling back to defaults.

        Malformed or out-of-range values are logged and ignored rather than
        aborting the run.
        """
        env = os.environ if env is None else env

        backend = (env.get("REPROMPT_BACKEND") or DEFAULT_BACKEND).strip().lower()
        if backend not in BACKENDS:
            log.warning(f"REPROMPT_BACKEND={backend!r} unknown, using {DEFAULT_BACKEND}")
            backend = DEFAULT_BACKEND

        return cls(
            backend=backend,
            clipboard_timeout=_env_float(
                env, "REPROMPT_CLIPBOARD_TIMEOUT", DEFAULT_CLIPBOARD_TIMEOUT, low=0.1
            ),
            min_keep_ratio=_env_float(
                env, "REPROMPT_MIN_KEEP_RATIO", DEFAULT_MIN_KEEP_RATIO, high=1.0
            ),
            mojibake_min_score=_env_float(
                env, "REPROMPT_MOJIBAKE_MIN_SCORE", DEFAULT_MOJIBAKE_MIN_SCORE, high=1.0
            ),
            table_pipe_min=_env_int(env, "REPROMPT_TABLE_PIPE_MIN", DEFAULT_TABLE_PIPE_MIN, low=2),
            log_file=env.get("REPROMPT_LOG_FILE") or None,
        )

    def __repr__(self):
        return (
            f"Settings(backend={self.backend!r}, clipboard_timeout={self.clipboard_timeout}, "
            f"min_keep_ratio={self.min_keep_ratio}, mojibake_min_score={self.mojibake_min_score}, "
            f"table_pipe_min={self.table_pipe_min}, log_file={self.log_file!r})"
        )
