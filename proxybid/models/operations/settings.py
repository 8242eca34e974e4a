"""
Admin-editable engine settings.

Stored ``Setting`` documents override the environment defaults. Values are
read on every use so a change applies to the very next bid.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from proxybid.errors import NotFound, ValidationError, store_errors
from proxybid.models.entities.settings import Setting, SettingData
from proxybid.utils import env

logger = logging.getLogger(__name__)

AUTO_EXTEND_THRESHOLD_MINUTES = env.EnvVarSpec(
    id="AUTO_EXTEND_THRESHOLD_MINUTES",
    default="5",
    parse=int,
    type=(int, ...),
)

AUTO_EXTEND_DURATION_MINUTES = env.EnvVarSpec(
    id="AUTO_EXTEND_DURATION_MINUTES",
    default="10",
    parse=int,
    type=(int, ...),
)

KNOWN_SETTINGS: Dict[str, tuple] = {
    "auto_extend_threshold_minutes": (
        AUTO_EXTEND_THRESHOLD_MINUTES,
        "Minutes before auction end to trigger auto-extend when new bid placed",
    ),
    "auto_extend_duration_minutes": (
        AUTO_EXTEND_DURATION_MINUTES,
        "Number of minutes to extend auction when auto-extend is triggered",
    ),
}


@dataclass(frozen=True)
class AutoExtendSettings:
    threshold_minutes: int
    extension_minutes: int

    @property
    def threshold(self) -> timedelta:
        return timedelta(minutes=self.threshold_minutes)

    @property
    def extension(self) -> timedelta:
        return timedelta(minutes=self.extension_minutes)


def _parse_minutes(key: str, value: Any) -> int:
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Setting '{key}' must be a whole number of minutes")
    if minutes <= 0:
        raise ValidationError(f"Setting '{key}' must be positive")
    return minutes


async def settings_get_value(key: str) -> int:
    if key not in KNOWN_SETTINGS:
        raise NotFound(f"Unknown setting '{key}'")
    spec, _ = KNOWN_SETTINGS[key]

    stored = await Setting.get(key)
    if stored:
        try:
            return _parse_minutes(key, stored.data.value)
        except ValidationError:
            logger.warning(f"Stored setting {key}={stored.data.value!r} is invalid, using default")
    return env.parse(spec)


async def settings_get_auto_extend() -> AutoExtendSettings:
    return AutoExtendSettings(
        threshold_minutes=await settings_get_value("auto_extend_threshold_minutes"),
        extension_minutes=await settings_get_value("auto_extend_duration_minutes"),
    )


async def settings_list() -> List[Dict[str, Any]]:
    result = []
    with store_errors():
        for key, (_spec, description) in KNOWN_SETTINGS.items():
            stored = await Setting.get(key)
            result.append({
                "key": key,
                "value": await settings_get_value(key),
                "description": description,
                "source": "stored" if stored else "default",
            })
    return result


async def settings_update(key: str, value: Any, user_id: Optional[str] = None) -> Setting:
    if key not in KNOWN_SETTINGS:
        raise NotFound(f"Unknown setting '{key}'")
    minutes = _parse_minutes(key, value)
    _spec, description = KNOWN_SETTINGS[key]

    # A concurrent writer makes the CAS replace or the insert fail with Conflict.
    with store_errors():
        existing = await Setting.get(key)
        if existing:
            existing.data.value = str(minutes)
            updated = await Setting.update(existing)
        else:
            updated = await Setting.create(
                SettingData(key=key, value=str(minutes), description=description),
                key=key,
                user_id=user_id,
            )
    logger.info(f"Setting {key} set to {minutes}")
    return updated
