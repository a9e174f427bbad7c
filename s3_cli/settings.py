from __future__ import annotations
"""Client settings persistence helpers."""

from dataclasses import asdict, dataclass
import json
import logging
from pathlib import Path

from .aliases import DEFAULT_CONFIG_DIR
from .lister import DEFAULT_QUEUE_SIZE
from .services import DEFAULT_REGION
from .upload import DEFAULT_PARALLEL

LOGGER = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "settings.json"
MIN_PART_SIZE = 5 * 1024 * 1024
MAX_PARTS = 10000


@dataclass
class ClientSettings:
    """Defaults applied when a command does not override them."""

    part_size: int = 16 * 1024 * 1024
    parallel: int = DEFAULT_PARALLEL
    list_queue_size: int = DEFAULT_QUEUE_SIZE
    region: str = DEFAULT_REGION


def _positive_int(value: object, default: int, minimum: int = 1) -> int:
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if number < minimum:
        return default
    return number


class SettingsStorage:
    """JSON-backed persistence for :class:`ClientSettings`."""

    def __init__(self, config_dir: str | Path | None = None):
        directory = Path(config_dir) if config_dir is not None else DEFAULT_CONFIG_DIR
        self._path = directory / SETTINGS_FILE_NAME

    def load(self) -> ClientSettings:
        if not self._path.exists():
            return ClientSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            LOGGER.warning("Ignoring unreadable settings file %s", self._path)
            return ClientSettings()
        defaults = ClientSettings()
        region = data.get("region")
        return ClientSettings(
            part_size=_positive_int(data.get("part_size"), defaults.part_size, MIN_PART_SIZE),
            parallel=_positive_int(data.get("parallel"), defaults.parallel),
            list_queue_size=_positive_int(data.get("list_queue_size"), defaults.list_queue_size),
            region=region if isinstance(region, str) and region else defaults.region,
        )

    def save(self, settings: ClientSettings) -> None:
        payload = asdict(settings)
        payload["part_size"] = max(int(settings.part_size), MIN_PART_SIZE)
        payload["parallel"] = max(int(settings.parallel), 1)
        payload["list_queue_size"] = max(int(settings.list_queue_size), 1)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            LOGGER.debug("Unable to write settings to %s", self._path)
