"""
Canonical catalog schemas.

Read-only views over the internal product and store catalogs that
supply display attributes for consolidated rows.
"""

from typing import Optional
from pydantic import field_validator

from models.base import BaseSchema


class ProductCatalogEntry(BaseSchema):
    """Internal product as seen by enrichment."""

    code: str
    model_name: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def code_to_str(cls, v):
        return str(v).strip()


class StoreCatalogEntry(BaseSchema):
    """Internal store as seen by enrichment."""

    code: str
    store_name: Optional[str] = None
    authorized_distributor: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def code_to_str(cls, v):
        return str(v).strip()
