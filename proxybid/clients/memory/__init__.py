from .collection import MemoryCollection
