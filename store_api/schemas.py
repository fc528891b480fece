# store_api/schemas.py
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List

# Request bodies. Create variants carry no id; update variants make every
# field optional so PATCH can merge.

# ---------------------------
# Products
# ---------------------------
class ProductCreate(BaseModel):
    name: str
    about: str
    price: float = Field(..., gt=0, strict=True, allow_inf_nan=False)
    categoryIds: List[str] = []

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    about: Optional[str] = None
    price: Optional[float] = Field(None, gt=0, strict=True, allow_inf_nan=False)
    categoryIds: Optional[List[str]] = None

# ---------------------------
# Users
# ---------------------------
class UserCreate(BaseModel):
    username: str
    password: str
    email: EmailStr

class UserUpdate(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[EmailStr] = None

# ---------------------------
# Orders
# ---------------------------
class OrderCreate(BaseModel):
    userId: str
    productIds: List[str] = Field(..., min_length=1)
    payment: bool = False

class OrderUpdate(BaseModel):
    userId: Optional[str] = None
    productIds: Optional[List[str]] = Field(None, min_length=1)
    payment: Optional[bool] = None

# ---------------------------
# Categories
# ---------------------------
class CategoryCreate(BaseModel):
    name: str

class CategoryUpdate(BaseModel):
    name: Optional[str] = None


def payload_values(payload: BaseModel) -> dict:
    """Fields the client actually sent; explicit nulls count as absent."""
    return payload.model_dump(exclude_none=True)
