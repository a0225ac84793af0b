from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Wire format is camelCase, Python side is snake_case


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthScheme(str, Enum):
    PROVIDER = "PROVIDER"
    SELF_ISSUED = "SELF_ISSUED"


class Identity(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    uid: str = Field(min_length=1)
    email: Optional[str] = None
    name: Optional[str] = None
    auth_scheme: AuthScheme


class LineItem(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    qty: int = Field(ge=1, le=99)
    price: float
    line_total: float


class PricedItems(WireModel):
    items: list[LineItem]
    subtotal: float
    tax_rate: float
    tax: float
    total: float


class Order(PricedItems):
    owner_uid: str
    status: str = "PLACED"
    created_at: Optional[datetime] = None


class StoredOrder(Order):
    id: str


class OrderIn(BaseModel):
    # items stay untyped here; pricing.normalize_items owns their validation
    items: Any = None
    status: Optional[str] = None


class Credentials(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("email must contain '@'")
        return v

    @field_validator("password")
    @classmethod
    def fits_bcrypt(cls, v: str) -> str:
        if len(v.encode("utf-8")) > 72:
            raise ValueError("password must be at most 72 bytes")
        return v


class SignupCredentials(Credentials):
    password: str = Field(min_length=6)
