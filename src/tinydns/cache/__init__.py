from .answer_cache import AnswerCache, cache_key
from .backends.hybrid import HybridStore
from .base import KeyValueStore

__all__ = ["AnswerCache", "HybridStore", "KeyValueStore", "cache_key"]
