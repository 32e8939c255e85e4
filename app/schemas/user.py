from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional

class UserCreate(BaseModel):
    email: str
    name: Optional[str] = None
    role: str = "customer"
    status: str = "active"

class User(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
