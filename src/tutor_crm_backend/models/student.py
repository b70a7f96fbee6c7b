'''
API models for students.
'''
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# --- 1. API Input Models (for POST/PATCH) ---

class StudentCreate(BaseModel):
    full_name: str = Field(min_length=1)
    parent_name: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None

class StudentUpdate(BaseModel):
    """All fields optional; only the provided ones are applied."""
    full_name: Optional[str] = Field(default=None, min_length=1)
    parent_name: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


# --- 2. API Output Models (for GET) ---

class StudentRead(BaseModel):
    id: UUID
    full_name: str
    parent_name: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    balance: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
