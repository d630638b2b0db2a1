"""Optional ``.env`` loading for the worker and operator scripts."""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv  # type: ignore

from core.logging import get_logger

logger = get_logger(__name__)


def load_dotenv_if_available(path: Path | None = None) -> bool:
    """Load ``path`` (default ``./.env``) without overriding the real environment.

    Returns ``True`` when a file was loaded.
    """
    env_path = path or Path(".env")
    if not env_path.exists():
        return False
    try:
        load_dotenv(dotenv_path=env_path, override=False)
    except Exception as exc:  # pragma: no cover - best effort
        logger.warning("Failed to load .env file %s: %s", env_path, exc)
        return False
    logger.debug("Loaded environment variables from %s", env_path)
    return True


__all__ = ["load_dotenv_if_available"]
