"""Store Settings: process-wide configuration for a GoalOS store

Settings are resolved once at process start and are read-only afterwards.
Every store, builder and service receives its StoreSettings explicitly;
nothing reads the store location from a module global.

Resolution order (later wins):
1. Built-in defaults
2. <home>/settings.json
3. Environment (GOALOS_HOME, GOALOS_ACTOR, GOALOS_BRANCH_COLLISION)
4. Explicit keyword overrides passed to resolve()
"""

import json
import logging
import os
import socket
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

from goalos.core.errors import StorageError, ValidationError
from goalos.models.branch import BranchCollisionPolicy

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"


def default_home() -> Path:
    """Default store home: ~/.goalos"""
    return Path.home() / ".goalos"


def _device_name() -> str:
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"


@dataclass(frozen=True)
class StoreSettings:
    """Store Settings: location and behaviour of one goal store"""

    home: Path = field(default_factory=default_home)
    actor: str = "main"
    device: str = field(default_factory=_device_name)
    branch_collision: BranchCollisionPolicy = BranchCollisionPolicy.FAIL
    lock_timeout_seconds: float = 10.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary"""
        data = asdict(self)
        data["home"] = str(self.home)
        data["branch_collision"] = self.branch_collision.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional["StoreSettings"] = None) -> "StoreSettings":
        """Create from dictionary, keeping base values for missing keys"""
        base = base or cls()
        try:
            return replace(
                base,
                home=Path(data.get("home", base.home)).expanduser(),
                actor=str(data.get("actor", base.actor)),
                device=str(data.get("device", base.device)),
                branch_collision=BranchCollisionPolicy(
                    data.get("branch_collision", base.branch_collision)
                ),
                lock_timeout_seconds=float(
                    data.get("lock_timeout_seconds", base.lock_timeout_seconds)
                ),
            )
        except ValueError as e:
            raise ValidationError(f"Invalid settings: {e}", field="settings") from e

    @classmethod
    def resolve(cls, home: Optional[Path] = None, **overrides: Any) -> "StoreSettings":
        """
        Resolve settings for this process

        Args:
            home: Explicit store home (wins over GOALOS_HOME)
            **overrides: Explicit values for any other field

        Returns:
            Frozen StoreSettings
        """
        env_home = os.environ.get("GOALOS_HOME")
        resolved_home = Path(home or env_home or default_home()).expanduser()

        settings = cls(home=resolved_home)
        file_data = load_settings(resolved_home)
        file_data.pop("home", None)
        settings = cls.from_dict(file_data, base=settings)

        env: Dict[str, Any] = {}
        if os.environ.get("GOALOS_ACTOR"):
            env["actor"] = os.environ["GOALOS_ACTOR"]
        if os.environ.get("GOALOS_BRANCH_COLLISION"):
            env["branch_collision"] = os.environ["GOALOS_BRANCH_COLLISION"]
        settings = cls.from_dict(env, base=settings)

        explicit = {k: v for k, v in overrides.items() if v is not None}
        return cls.from_dict(explicit, base=settings)


def load_settings(home: Path) -> Dict[str, Any]:
    """Load raw settings from <home>/settings.json (empty dict if absent)"""
    settings_path = Path(home) / SETTINGS_FILENAME
    if not settings_path.exists():
        return {}

    try:
        with open(settings_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load settings from {settings_path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring settings file {settings_path}: not a JSON object")
        return {}
    return data


def save_settings(settings: StoreSettings) -> Path:
    """Persist settings to <home>/settings.json"""
    settings_path = settings.home / SETTINGS_FILENAME
    try:
        settings_path.parent.mkdir(parents=True, exist_ok=True)
        with open(settings_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)
    except OSError as e:
        raise StorageError(f"Failed to save settings: {e}", path=str(settings_path)) from e
    return settings_path
