from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from uuid import UUID


# ===== USER / CATEGORY PYDANTIC MODELS =====

class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        return v.strip()

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("email must contain '@'")
        return v


class UserResponse(BaseModel):
    db_id: int
    id: UUID
    username: str
    email: str
    created_at: datetime

    class Config:
        from_attributes = True


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Category name")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return v.strip()


class CategoryResponse(CategoryCreate):
    id: int

    class Config:
        from_attributes = True
