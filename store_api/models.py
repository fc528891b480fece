# store_api/models.py
from datetime import datetime
from pydantic import BaseModel
from typing import Optional, List

# Response shapes. Anything not declared here (the password digest in
# particular) never leaves the server.

class Category(BaseModel):
    id: str
    name: str

class Product(BaseModel):
    id: str
    name: str
    about: str
    price: float
    categoryIds: List[str] = []
    categories: List[Category] = []

class User(BaseModel):
    id: str
    username: str
    email: str

class Order(BaseModel):
    id: str
    userId: str
    productIds: List[str]
    total: float
    payment: bool = False
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    user: Optional[User] = None
    products: List[Product] = []
