"""
Merge intent schemas.

An intent identifies a logical distributor record by either its
product key or its store key, and optionally carries the canonical
code to assign when no master mapping exists yet.
"""

from typing import Annotated, Literal, Optional, Union
from pydantic import Field, field_validator

from models.base import BaseSchema, InboundSchema
from utils.text_utils import product_search_key, store_search_key


class ByProductKey(InboundSchema):
    """Match rows by distributor + product code + description."""

    kind: Literal["product"] = "product"
    distributor: str
    product_code: str
    description: str
    code_product: Optional[str] = Field(None, description="Canonical product code to assign")

    @field_validator("product_code", "code_product", mode="before")
    @classmethod
    def stringify(cls, v):
        return None if v is None else str(v)

    @property
    def search_key(self) -> str:
        return product_search_key(self.distributor, self.product_code, self.description)


class ByStoreKey(InboundSchema):
    """Match rows by distributor + store code."""

    kind: Literal["store"] = "store"
    distributor: str
    store_code: str
    code_store: Optional[str] = Field(None, description="Canonical store code to assign")

    @field_validator("store_code", "code_store", mode="before")
    @classmethod
    def stringify(cls, v):
        return None if v is None else str(v)

    @property
    def search_key(self) -> str:
        return store_search_key(self.distributor, self.store_code)


MergeIntent = Annotated[Union[ByProductKey, ByStoreKey], Field(discriminator="kind")]


class MergeRequest(BaseSchema):
    """Sequence of intents applied in order."""

    intents: list[MergeIntent]


class MergeResult(BaseSchema):
    """Outcome of a merge call."""

    message: str = "Records updated successfully"
    updated: int = 0
