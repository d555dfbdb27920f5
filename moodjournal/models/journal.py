from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Journal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    title: Optional[str] = None
    content: str
    mood: Optional[str] = None
    created_at: datetime
