"""Key Encoder: turns (method, path, params) into a canonical :class:`CacheKey`.

``params`` follows the openapi-fetch request shape::

    {
        "path":  {"id": 42},              # substituted into "/things/{id}"
        "query": {"limit": 10, "tag": ["a", "b"]},
        "body":  {"name": "x"},
    }

Encoding is pure and deterministic: query parameters are sorted by name so
their order never affects the key, and bodies are rendered as canonical
JSON (sorted keys, no whitespace).
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

from resourcesync.models.cache import CacheKey
from resourcesync.utils.errors import InvalidRequestShape

_PLACEHOLDER = re.compile(r"\{([^{}/]+)\}")
_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"})
_SECTIONS = frozenset({"path", "query", "body"})
_PROVIDER_NAME = "key_encoder"


def encode(
    method: str,
    path: str,
    params: Mapping[str, Any] | None = None,
    prefix: str = "",
) -> CacheKey:
    """Encode a request into its cache key.

    Parameters
    ----------
    method:
        HTTP method, any case.
    path:
        Path template, e.g. ``"/logical-things/{id}"``.
    params:
        Optional mapping with ``path``, ``query`` and ``body`` sections.
    prefix:
        Namespace shared by every key of one client.

    Raises
    ------
    InvalidRequestShape
        If the method is unknown, ``params`` has an unknown section, a
        required path parameter is missing, or the body cannot be encoded.
    """
    normalized_method = (method or "").strip().upper()
    if normalized_method not in _METHODS:
        raise InvalidRequestShape(
            f"Unsupported method: {method!r}", provider_name=_PROVIDER_NAME
        )
    if not path or not path.startswith("/"):
        raise InvalidRequestShape(
            f"Path must start with '/': {path!r}", provider_name=_PROVIDER_NAME
        )

    params = params or {}
    unknown = set(params) - _SECTIONS
    if unknown:
        raise InvalidRequestShape(
            f"Unknown params sections: {sorted(unknown)}", provider_name=_PROVIDER_NAME
        )

    return CacheKey(
        prefix=prefix,
        method=normalized_method,
        path=resolve_path(path, params.get("path")),
        query=canonical_query(params.get("query")),
        body=canonical_body(params.get("body")),
        template=path,
    )


def resolve_path(template: str, path_params: Mapping[str, Any] | None) -> str:
    """Substitute ``{name}`` placeholders, URL-quoting each value."""
    path_params = path_params or {}
    missing = [
        name for name in _PLACEHOLDER.findall(template)
        if path_params.get(name) is None
    ]
    if missing:
        raise InvalidRequestShape(
            f"Missing path parameters for {template}: {', '.join(missing)}",
            provider_name=_PROVIDER_NAME,
        )

    return _PLACEHOLDER.sub(
        lambda match: quote(_render_scalar(path_params[match.group(1)]), safe=""),
        template,
    )


def canonical_query(query: Mapping[str, Any] | None) -> tuple[tuple[str, str], ...]:
    """Flatten and name-sort query parameters.

    ``None`` values are dropped, list values expand to repeated names (their
    relative order is preserved), booleans render as ``true``/``false``.
    """
    if not query:
        return ()
    pairs: list[tuple[str, str]] = []
    for name, value in query.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((str(name), _render_scalar(item)) for item in value if item is not None)
        else:
            pairs.append((str(name), _render_scalar(value)))
    # sorted() is stable: repeated names keep their given order.
    return tuple(sorted(pairs, key=lambda pair: pair[0]))


def canonical_body(body: Any) -> str:
    if body is None:
        return ""
    try:
        return json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise InvalidRequestShape(
            f"Body is not JSON-encodable: {exc}", provider_name=_PROVIDER_NAME
        ) from exc


def decode_body(key: CacheKey) -> Any:
    """Inverse of :func:`canonical_body` for building the loader call."""
    if not key.body:
        return None
    return json.loads(key.body)


def _render_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
