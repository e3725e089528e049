"""User-profile collaborator: preference signals for personalization."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from src.core.schemas import UserSignal

logger = logging.getLogger(__name__)


class UserProfileProvider(ABC):
    @abstractmethod
    def get_signals(self, user_id: str) -> UserSignal | None:
        """Return the user's signals, or None when the user is unknown."""


class StaticProfileProvider(UserProfileProvider):
    def __init__(self, signals: Mapping[str, UserSignal] | None = None) -> None:
        self._signals = dict(signals or {})

    def get_signals(self, user_id: str) -> UserSignal | None:
        return self._signals.get(user_id)


class YamlProfileProvider(StaticProfileProvider):
    """Signals loaded from a YAML file.

    Expected shape::

        users:
          u-123:
            top_skills: [python, fastapi]
            top_locations: [Bengaluru]
            preferred_job_types: [full-time]
            preferred_resume_id: r-9
    """

    def __init__(self, path: str | Path) -> None:
        path = Path(path)
        if not path.exists():
            msg = f"Profiles file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        users = raw.get("users") or {}
        if not isinstance(users, dict):
            msg = f"'users' must be a mapping in {path}"
            raise ValueError(msg)
        signals = {str(uid): UserSignal.model_validate(data or {}) for uid, data in users.items()}
        logger.debug("Loaded signals for %d users from %s", len(signals), path)
        super().__init__(signals)
