from pydantic import BaseModel
from typing import Any, Dict


class PreferencesUpdate(BaseModel):
    # Values are checked for real booleans by the preferences service
    preferences: Dict[str, Any]
