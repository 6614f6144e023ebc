"""
Engram - memory intelligence and retrieval engine.

Ingests documents and conversations, distills them into atomic memories,
keeps the memory graph consistent, forgets what stops mattering and serves
hybrid search over what remains.
"""

from engram.config import Config
from engram.services.memory_engine import MemoryEngine

__version__ = "0.1.0"

__all__ = ["Config", "MemoryEngine"]
