from typing import Optional

from pydantic import BaseModel

from proxybid.utils import env, log
from proxybid.utils.env import EnvVarSpec

logger = log.get_logger(__name__)

#### Types ####

class HttpServerConf(BaseModel):
    host: str
    port: int
    autoreload: bool

class LifecycleConf(BaseModel):
    enabled: bool
    tick_seconds: int
    max_concurrency: int

#### Env Vars ####

## Logging ##

LOG_LEVEL = EnvVarSpec(id="LOG_LEVEL", default="INFO")

ENVIRONMENT = EnvVarSpec(id="ENVIRONMENT", default="development")

## HTTP ##

HTTP_HOST = EnvVarSpec(id="HTTP_HOST", default="0.0.0.0")

HTTP_PORT = EnvVarSpec(id="HTTP_PORT", default="8000", parse=int, type=(int, ...))

HTTP_AUTORELOAD = EnvVarSpec(
    id="HTTP_AUTORELOAD",
    parse=lambda x: x.lower() == "true",
    default="false",
    type=(bool, ...),
)

HTTP_EXPOSE_ERRORS = EnvVarSpec(
    id="HTTP_EXPOSE_ERRORS",
    default="false",
    parse=lambda x: x.lower() == "true",
    type=(bool, ...),
)

## Store ##

STORE_BACKEND = EnvVarSpec(id="STORE_BACKEND", default="couchbase")

## Lifecycle scheduler ##

LIFECYCLE_ENABLED = EnvVarSpec(
    id="LIFECYCLE_ENABLED",
    default="true",
    parse=lambda x: x.lower() == "true",
    type=(bool, ...),
)

LIFECYCLE_TICK_SECONDS = EnvVarSpec(
    id="LIFECYCLE_TICK_SECONDS",
    default="15",
    parse=int,
    type=(int, ...),
)

LIFECYCLE_MAX_CONCURRENCY = EnvVarSpec(
    id="LIFECYCLE_MAX_CONCURRENCY",
    default="8",
    parse=int,
    type=(int, ...),
)

## Notifications ##

NOTIFY_WEBHOOK_URL = EnvVarSpec(id="NOTIFY_WEBHOOK_URL", is_optional=True)

NOTIFY_TIMEOUT_SECONDS = EnvVarSpec(
    id="NOTIFY_TIMEOUT_SECONDS",
    default="5",
    parse=float,
    type=(float, ...),
)

#### Validation ####
VALIDATED_ENV_VARS = [
    HTTP_AUTORELOAD,
    HTTP_EXPOSE_ERRORS,
    HTTP_PORT,
    LOG_LEVEL,
    ENVIRONMENT,
    STORE_BACKEND,
    LIFECYCLE_ENABLED,
    LIFECYCLE_TICK_SECONDS,
    LIFECYCLE_MAX_CONCURRENCY,
    NOTIFY_WEBHOOK_URL,
    NOTIFY_TIMEOUT_SECONDS,
]

def validate() -> bool:
    if get_store_backend() not in ("couchbase", "memory"):
        logger.error(f"STORE_BACKEND must be 'couchbase' or 'memory', got {get_store_backend()!r}")
        return False
    return env.validate(VALIDATED_ENV_VARS)

#### Getters ####

def get_log_level() -> str:
    return env.parse(LOG_LEVEL)

def get_environment() -> str:
    return env.parse(ENVIRONMENT)

def get_http_expose_errors() -> bool:
    return env.parse(HTTP_EXPOSE_ERRORS)

def get_http_conf() -> HttpServerConf:
    return HttpServerConf(
        host=env.parse(HTTP_HOST),
        port=env.parse(HTTP_PORT),
        autoreload=env.parse(HTTP_AUTORELOAD),
    )

def get_store_backend() -> str:
    return env.parse(STORE_BACKEND).lower()

def get_lifecycle_conf() -> LifecycleConf:
    return LifecycleConf(
        enabled=env.parse(LIFECYCLE_ENABLED),
        tick_seconds=max(1, env.parse(LIFECYCLE_TICK_SECONDS)),
        max_concurrency=max(1, env.parse(LIFECYCLE_MAX_CONCURRENCY)),
    )

def get_notify_webhook_url() -> Optional[str]:
    return env.parse(NOTIFY_WEBHOOK_URL)

def get_notify_timeout() -> float:
    return env.parse(NOTIFY_TIMEOUT_SECONDS)
