"""
Master mapping schemas.

A master mapping ties a distributor's own product or store code to
the internal canonical code. Each row owns a unique search key built
from the distributor fields.
"""

from typing import Any, Optional
from pydantic import Field, field_validator

from models.base import BaseSchema, InboundSchema, TimestampMixin
from utils.text_utils import product_search_key, store_search_key


def _code_to_str(v: Any) -> Optional[str]:
    """Canonical codes arrive as numbers or strings; store as stripped str."""
    if v is None:
        return None
    text = str(v).strip()
    return text or None


# ===================
# PRODUCT MAPPINGS
# ===================

class ProductMappingCreate(InboundSchema):
    """Schema for creating a product mapping."""

    distributor: str = Field(..., description="Distributor identifier")
    product_distributor: Optional[str] = Field(None, description="Distributor's product code")
    product_description: Optional[str] = Field(None, description="Distributor's free-text description")
    code_product: Optional[str] = Field(None, description="Canonical product code (null until resolved)")

    @field_validator("product_distributor", "product_description", "code_product", mode="before")
    @classmethod
    def coerce_code(cls, v):
        return _code_to_str(v)

    @property
    def search_key(self) -> str:
        return product_search_key(
            self.distributor, self.product_distributor, self.product_description
        )


class ProductMappingUpdate(InboundSchema):
    """Schema for updating a product mapping."""

    distributor: Optional[str] = None
    product_distributor: Optional[str] = None
    product_description: Optional[str] = None
    code_product: Optional[str] = None

    @field_validator("product_distributor", "product_description", "code_product", mode="before")
    @classmethod
    def coerce_code(cls, v):
        return _code_to_str(v)


class ProductMapping(TimestampMixin, BaseSchema):
    """Product mapping as stored."""

    id: int
    distributor: Optional[str] = None
    product_distributor: Optional[str] = None
    product_description: Optional[str] = None
    code_product: Optional[str] = None
    search_key: str

    @field_validator("product_distributor", "code_product", mode="before")
    @classmethod
    def coerce_code(cls, v):
        return _code_to_str(v)

    @property
    def is_resolved(self) -> bool:
        """True once a canonical product code has been assigned."""
        return self.code_product is not None

    @property
    def canonical_code(self) -> Optional[str]:
        return self.code_product


# ===================
# STORE MAPPINGS
# ===================

class StoreMappingCreate(InboundSchema):
    """Schema for creating a store mapping."""

    distributor: str = Field(..., description="Distributor identifier")
    store_distributor: Optional[str] = Field(None, description="Distributor's store code")
    code_store: Optional[str] = Field(None, description="Canonical store code (null until resolved)")

    @field_validator("store_distributor", "code_store", mode="before")
    @classmethod
    def coerce_code(cls, v):
        return _code_to_str(v)

    @property
    def search_key(self) -> str:
        return store_search_key(self.distributor, self.store_distributor)


class StoreMappingUpdate(InboundSchema):
    """Schema for updating a store mapping."""

    distributor: Optional[str] = None
    store_distributor: Optional[str] = None
    code_store: Optional[str] = None

    @field_validator("store_distributor", "code_store", mode="before")
    @classmethod
    def coerce_code(cls, v):
        return _code_to_str(v)


class StoreMapping(TimestampMixin, BaseSchema):
    """Store mapping as stored."""

    id: int
    distributor: Optional[str] = None
    store_distributor: Optional[str] = None
    code_store: Optional[str] = None
    search_key: str

    @field_validator("store_distributor", "code_store", mode="before")
    @classmethod
    def coerce_code(cls, v):
        return _code_to_str(v)

    @property
    def is_resolved(self) -> bool:
        """True once a canonical store code has been assigned."""
        return self.code_store is not None

    @property
    def canonical_code(self) -> Optional[str]:
        return self.code_store
