from typing import Optional
from proxybid.clients import BaseModelDocument, BaseEntityData


class SettingData(BaseEntityData):
    key: str
    value: str
    description: Optional[str] = None


class Setting(BaseModelDocument[SettingData]):
    _collection_name = "settings"
