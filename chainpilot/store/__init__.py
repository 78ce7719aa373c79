"""
Durable storage for chainpilot.
"""
from .base import Store
from .json_store import JsonStore

__all__ = ["Store", "JsonStore"]
