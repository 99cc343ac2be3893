"""
Deterministic cache key generation.

Keys are built from the method, the normalized URL, the merged and sorted
query parameters, a canonical rendering of the body and (optionally) the
selected headers. Components are hashed with a non-cryptographic hash so that
identical requests always produce identical keys across processes.
"""
import dataclasses
import datetime
import json
import logging
import re
import weakref
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple
from urllib.parse import parse_qsl, urlsplit, urlunsplit
from uuid import UUID

from ..errors import create_validation_error
from ..types import RequestDescriptor
from .types import (
    CacheKeyConfig,
    HashAlgorithm,
    KeyGeneratorStats,
    validate_cache_key_config,
)

logger = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF
_MASK64 = 0xFFFFFFFFFFFFFFFF

_FNV32_OFFSET_BASIS = 0x811C9DC5
_FNV32_PRIME = 0x01000193
_FNV64_OFFSET_BASIS = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3

# Fixed seed (golden ratio) so keys are stable across processes.
_SEED = 0x9E3779B1

_SEPARATOR = "|"
_MEMO_LIMIT = 1000
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def fnv1a_32(data: bytes) -> int:
    """32-bit FNV-1a, seeded."""
    value = (_FNV32_OFFSET_BASIS ^ _SEED) & _MASK32
    for byte in data:
        value ^= byte
        value = (value * _FNV32_PRIME) & _MASK32
    return value


def fnv1a_64(data: bytes) -> int:
    """64-bit FNV-1a, seeded."""
    value = (_FNV64_OFFSET_BASIS ^ _SEED) & _MASK64
    for byte in data:
        value ^= byte
        value = (value * _FNV64_PRIME) & _MASK64
    return value


def simple_hash(data: bytes) -> int:
    """31-multiplier string hash folded to 32 bits."""
    value = 0
    for byte in data:
        value = (value * 31 + byte) & _MASK32
    return value


_HASHERS = {
    HashAlgorithm.FNV1A: fnv1a_32,
    HashAlgorithm.FNV1A64: fnv1a_64,
    HashAlgorithm.SIMPLE: simple_hash,
}


def hash_text(text: str, algorithm: HashAlgorithm = HashAlgorithm.FNV1A) -> str:
    """Hash ``text`` and render it in base 36."""
    if not text:
        return "0"
    return _to_base36(_HASHERS[HashAlgorithm(algorithm)](text.encode("utf-8")))


class _CyclicReference(Exception):
    """Raised internally when the body refers back to itself."""


def _canonical(value: Any, path: Set[int]) -> str:
    """Render ``value`` as a stable string, independent of mapping order."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return f"bool:{value}"
    if isinstance(value, (int, float)):
        return f"num:{value!r}"
    if isinstance(value, str):
        return f"str:{json.dumps(value)}"
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        return f"bytes:{len(raw)}:{_to_base36(fnv1a_64(raw))}"
    if isinstance(value, Enum):
        return f"enum:{type(value).__name__}.{value.name}"
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return f"dt:{value.isoformat()}"
    if isinstance(value, (Decimal, UUID)):
        return f"{type(value).__name__.lower()}:{value}"

    marker = id(value)
    if marker in path:
        raise _CyclicReference()
    path.add(marker)
    try:
        if isinstance(value, Mapping):
            return "{" + _render_pairs(value.items(), path) + "}"
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            pairs = ((f.name, getattr(value, f.name)) for f in dataclasses.fields(value))
            return f"{type(value).__name__}{{" + _render_pairs(pairs, path) + "}"
        if isinstance(value, (list, tuple)):
            return "[" + ",".join(_canonical(item, path) for item in value) + "]"
        if isinstance(value, (set, frozenset)):
            return "set{" + ",".join(sorted(_canonical(item, path) for item in value)) + "}"
        if hasattr(value, "__dict__"):
            return f"{type(value).__name__}{{" + _render_pairs(vars(value).items(), path) + "}"
        return f"obj:{type(value).__name__}:{value!r}"
    finally:
        path.discard(marker)


def _render_pairs(pairs: Iterable[Tuple[Any, Any]], path: Set[int]) -> str:
    rendered = [(_canonical(k, path), _canonical(v, path)) for k, v in pairs]
    rendered.sort()
    return ",".join(f"{k}={v}" for k, v in rendered)


def _param_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _flatten_params(params: Mapping[str, Any]) -> List[Tuple[str, str]]:
    pairs: List[Tuple[str, str]] = []
    for name, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((str(name), _param_value(item)) for item in value if item is not None)
        else:
            pairs.append((str(name), _param_value(value)))
    return pairs


def _split_url(url: Any) -> Tuple[str, List[Tuple[str, str]]]:
    """Strip query/fragment and trailing slash; return the query pairs separately."""
    if not url or not isinstance(url, str):
        raise create_validation_error("Invalid URL for cache key generation", "INVALID_URL")

    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    clean = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    if clean.endswith("/") and len(clean) > 1:
        clean = clean[:-1]
    return clean, query


class CacheKeyGenerator:
    """
    Deterministic cache key generator.

    Example:
        generator = CacheKeyGenerator(CacheKeyConfig(include_headers=["authorization"]))
        key = generator.generate_key(RequestDescriptor(url="https://api.example.com/users"))
    """

    def __init__(self, config: Optional[CacheKeyConfig] = None) -> None:
        self._config = config or CacheKeyConfig()
        validate_cache_key_config(self._config)
        self._memo: Dict[int, Tuple["weakref.ref[RequestDescriptor]", tuple, str]] = {}
        self._stats = KeyGeneratorStats()

    @property
    def config(self) -> CacheKeyConfig:
        return self._config

    def generate_key(
        self,
        descriptor: RequestDescriptor,
        custom_key: Optional[str] = None,
    ) -> str:
        """Generate the cache key for ``descriptor``."""
        validate_cache_key_config(self._config)

        if custom_key is not None:
            return self._normalize_custom_key(custom_key)

        signature = self._config_signature()
        if self._config.enable_hash_cache:
            memoized = self._memo_get(descriptor, signature)
            if memoized is not None:
                return memoized

        key = self._build_key(descriptor)
        self._stats.keys_generated += 1

        if self._config.enable_hash_cache:
            self._memo_set(descriptor, signature, key)
        return key

    def _build_key(self, descriptor: RequestDescriptor) -> str:
        url, query = _split_url(descriptor.url)
        params_part = self._params_part(query, descriptor.params or {})
        headers_part = self._headers_part(descriptor.headers or {})

        try:
            data_part = self._data_part(descriptor.data)
        except (_CyclicReference, RecursionError):
            self._stats.fallback_keys += 1
            logger.warning(
                f"Cyclic or too deeply nested body for {descriptor.method} {url}, "
                "using reduced-fidelity key"
            )
            parts = ["cyclic", descriptor.method, url, params_part]
            if headers_part:
                parts.append(headers_part)
            return self._limit_length(_SEPARATOR.join(parts), descriptor.method, url)

        parts = [descriptor.method, url, params_part, data_part]
        if headers_part:
            parts.append(headers_part)
        return self._limit_length(_SEPARATOR.join(parts), descriptor.method, url)

    def _hash(self, text: str) -> str:
        return hash_text(text, self._config.hash_algorithm)

    def _params_part(
        self, query: List[Tuple[str, str]], params: Mapping[str, Any]
    ) -> str:
        pairs = sorted(query + _flatten_params(params))
        if not pairs:
            return ""
        return self._hash("&".join(f"{name}={value}" for name, value in pairs))

    def _data_part(self, data: Any) -> str:
        if data is None:
            return ""
        return self._hash(_canonical(data, set()))

    def _headers_part(self, headers: Mapping[str, str]) -> str:
        if not headers:
            return ""

        if self._config.include_all_headers:
            selected = [(name.lower(), str(value)) for name, value in headers.items()]
        elif self._config.include_headers:
            wanted = {name.lower() for name in self._config.include_headers}
            selected = [
                (name.lower(), str(value))
                for name, value in headers.items()
                if name.lower() in wanted
            ]
        else:
            return ""

        if not selected:
            return ""
        selected.sort()
        return self._hash("&".join(f"{name}:{value}" for name, value in selected))

    def _limit_length(self, key: str, method: str, url: str) -> str:
        max_length = self._config.max_key_length
        if len(key) <= max_length:
            return key

        # Hash the full key first, then shorten.
        digest = self._hash(key)
        available = max(0, max_length - len(method) - len(digest) - 4)
        short_url = url[:available] if available > 0 else ""
        result = f"{method}:{short_url}:{digest}" if short_url else f"{method}:{digest}"
        if len(result) > max_length:
            return digest[:max_length]
        return result

    def _normalize_custom_key(self, key: Any) -> str:
        if not isinstance(key, str) or not key:
            raise create_validation_error(
                "Custom cache key must be a non-empty string", "INVALID_CACHE_KEY"
            )
        if len(key) > self._config.max_key_length:
            return self._hash(key)
        return _CONTROL_CHARS.sub("_", key)

    def _config_signature(self) -> tuple:
        return (
            tuple(sorted(name.lower() for name in self._config.include_headers)),
            self._config.include_all_headers,
            self._config.max_key_length,
            HashAlgorithm(self._config.hash_algorithm).value,
        )

    def _memo_get(self, descriptor: RequestDescriptor, signature: tuple) -> Optional[str]:
        entry = self._memo.get(id(descriptor))
        if entry is not None:
            ref, memo_signature, key = entry
            if ref() is descriptor and memo_signature == signature:
                self._stats.memo_hits += 1
                return key
        self._stats.memo_misses += 1
        return None

    def _memo_set(self, descriptor: RequestDescriptor, signature: tuple, key: str) -> None:
        try:
            ref = weakref.ref(descriptor)
        except TypeError:
            return
        self._memo[id(descriptor)] = (ref, signature, key)
        if len(self._memo) > _MEMO_LIMIT:
            # Keep the most recent half.
            recent = list(self._memo.items())[len(self._memo) // 2:]
            self._memo = dict(recent)

    def update_config(self, **changes: Any) -> None:
        """Apply config changes; the result is validated before use."""
        updated = dataclasses.replace(self._config, **changes)
        self._config = updated
        self._memo.clear()

    def warmup(self, descriptors: Iterable[RequestDescriptor]) -> None:
        """Pre-compute keys for ``descriptors``."""
        for descriptor in descriptors:
            self.generate_key(descriptor)

    def clear_cache(self) -> None:
        """Drop memoized keys."""
        self._memo.clear()

    def get_stats(self) -> KeyGeneratorStats:
        return dataclasses.replace(self._stats, memo_size=len(self._memo))

    def reset_stats(self) -> None:
        self._stats = KeyGeneratorStats()


def generate_cache_key(
    descriptor: RequestDescriptor,
    config: Optional[CacheKeyConfig] = None,
) -> str:
    """One-off key generation without memoization."""
    key_config = dataclasses.replace(config or CacheKeyConfig(), enable_hash_cache=False)
    return CacheKeyGenerator(key_config).generate_key(descriptor)
