from typing import Any, Dict, List, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from proxybid.models.operations.settings import settings_list, settings_update
from proxybid.utils import log

from .dependencies import current_user_id

logger = log.get_logger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


class UpdateSettingRequest(BaseModel):
    value: Union[int, str]


@router.get("", response_model=List[Dict[str, Any]])
async def route_settings_list():
    """Auto-extend settings with their effective values."""
    return await settings_list()


@router.put("/{key}")
async def route_settings_update(
    key: str,
    body: UpdateSettingRequest,
    user_id: str = Depends(current_user_id),
):
    setting = await settings_update(key, body.value, user_id=user_id)
    return {"key": setting.data.key, "value": setting.data.value}
