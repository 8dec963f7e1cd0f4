"""远端书库客户端"""
from translate_worker.catalog.client import CatalogClient, VolumeTaskApi, WebTaskApi

__all__ = [
    "CatalogClient",
    "VolumeTaskApi",
    "WebTaskApi",
]
