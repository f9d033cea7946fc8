from .key_resolver import KeyFormat, ResolvedKey, resolve_key

__all__ = ["KeyFormat", "ResolvedKey", "resolve_key"]
