# medimind/runtime.py
"""DSPy bootstrap shared by the SDK and the CLI.

``import_dspy`` points the DSPy cache at a writable directory before the
first import; ``configure_dspy`` installs the LM described by
:class:`~medimind.config.MedimindConfig` exactly once per process.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from medimind.config import get_config

logger = logging.getLogger(__name__)

_configured = False
_lock = threading.Lock()


def _ensure_writable_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    return os.access(path, os.W_OK)


def ensure_dspy_cache_env() -> str:
    """Point ``DSPY_CACHEDIR`` at a writable location and return it."""
    candidates: list[Path] = []
    env_cache = os.environ.get("DSPY_CACHEDIR", "").strip()
    if env_cache:
        candidates.append(Path(env_cache))
    candidates.append(get_config().cache_dir)
    candidates.append(Path(tempfile.gettempdir()) / "medimind_dspy_cache")

    for candidate in candidates:
        if _ensure_writable_dir(candidate):
            os.environ["DSPY_CACHEDIR"] = str(candidate)
            return str(candidate)
    os.environ["DSPY_CACHEDIR"] = str(candidates[-1])
    return str(candidates[-1])


def import_dspy():
    """Import DSPy after runtime env bootstrap."""
    ensure_dspy_cache_env()
    os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")
    import dspy

    return dspy


def make_lm(model: str, **kwargs: Any) -> Any:
    """Create a ``dspy.LM``; ``None``-valued keyword arguments are dropped."""
    dspy = import_dspy()
    lm_kwargs = {k: v for k, v in kwargs.items() if v is not None}
    return dspy.LM(model, **lm_kwargs)


def configure_dspy(*, force: bool = False) -> None:
    """Configure DSPy with the LM from MedimindConfig.

    Raises ``RuntimeError`` if the API key is missing.
    """
    global _configured
    with _lock:
        if _configured and not force:
            return

        cfg = get_config()
        if not cfg.api_key:
            raise RuntimeError(
                "No API key configured. Set MEDIMIND_API_KEY or add it to your .env file."
            )

        dspy = import_dspy()

        # Keep LiteLLM chatter out of the application log.
        logging.getLogger("LiteLLM").setLevel(logging.ERROR)
        logging.getLogger("litellm").setLevel(logging.ERROR)
        os.environ.setdefault("LITELLM_LOG", "ERROR")

        from medimind.metrics import TokenTracker, set_tracker

        lm = make_lm(
            cfg.lm,
            api_key=cfg.api_key,
            api_base=cfg.api_base,
            temperature=cfg.lm_temperature,
            max_tokens=cfg.lm_max_tokens,
        )
        adapter = dspy.JSONAdapter() if cfg.adapter == "json" else dspy.ChatAdapter()
        dspy.configure(lm=lm, adapter=adapter)

        tracker = TokenTracker()
        set_tracker(tracker)
        dspy.settings.usage_tracker = tracker
        dspy.settings.track_usage = True

        _configured = True
        logger.info("DSPy configured with model %s", cfg.lm)


def is_configured() -> bool:
    return _configured
