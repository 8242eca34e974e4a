import os
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from pydantic import ValidationError, create_model

from . import log

logger = log.get_logger(__name__)


@dataclass(frozen=True)
class EnvVarSpec:
    """Declaration of one environment variable.

    ``type`` is a pydantic field tuple, e.g. ``(int, ...)``, used by
    :func:`validate` to check the parsed value.
    """
    id: str
    default: Optional[str] = None
    parse: Callable[[str], Any] = str
    type: Tuple[Any, Any] = (str, ...)
    is_optional: bool = False
    is_secret: bool = False


def get_raw(spec: EnvVarSpec) -> Optional[str]:
    value = os.environ.get(spec.id)
    if value is None or value == "":
        return spec.default
    return value


def parse(spec: EnvVarSpec) -> Any:
    raw = get_raw(spec)
    if raw is None:
        return None
    return spec.parse(raw)


def validate(specs: List[EnvVarSpec]) -> bool:
    fields = {}
    values = {}
    for spec in specs:
        field_type, default = spec.type
        if spec.is_optional:
            fields[spec.id] = (Optional[field_type], None)
        else:
            fields[spec.id] = (field_type, default)

        try:
            values[spec.id] = parse(spec)
        except (TypeError, ValueError) as e:
            shown = "***" if spec.is_secret else get_raw(spec)
            logger.error(f"Env var {spec.id}={shown!r} could not be parsed: {e}")
            return False

        if values[spec.id] is None and not spec.is_optional:
            logger.error(f"Env var {spec.id} is required but not set")
            return False

    model = create_model("EnvVars", **fields)
    try:
        model.model_validate(values)
    except ValidationError as e:
        for err in e.errors():
            logger.error(f"Env var {err['loc'][0]} invalid: {err['msg']}")
        return False
    return True
