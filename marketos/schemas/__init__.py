"""
Normalized record schemas
"""
from .records import (
    AdStatRecord,
    AlertRecord,
    Dimensions,
    FeeRecord,
    ProductRecord,
    SaleRecord,
    SeoSnapshotRecord,
)

__all__ = [
    "AdStatRecord",
    "AlertRecord",
    "Dimensions",
    "FeeRecord",
    "ProductRecord",
    "SaleRecord",
    "SeoSnapshotRecord",
]
