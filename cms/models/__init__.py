"""
Pydantic models for the CMS service.

Service-level data shapes live here. Catalog records live in primitives.catalog.records.
"""

from cms.models.primitive import ExecutionRecord, InvokeRequest, StoredPrimitive

__all__ = [
    "ExecutionRecord",
    "InvokeRequest",
    "StoredPrimitive",
]
