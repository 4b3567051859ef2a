"""Carrying trace propagation data in request metadata."""

from __future__ import annotations

import enum
from typing import Any

from rpcplug.context import ShareContext
from rpcplug.share import REQ_META_DATA_KEY


class _OpenTelemetryKeyType(enum.Enum):
    SPAN = 0


OPEN_TELEMETRY_KEY = _OpenTelemetryKeyType.SPAN


class MetadataCarrier:
    """Text-map carrier backed by a request's metadata mapping."""

    def __init__(self, metadata: dict[str, str]) -> None:
        self.metadata = metadata

    def get(self, key: str) -> str:
        return self.metadata.get(key, "")

    def set(self, key: str, value: str) -> None:
        self.metadata[key] = value

    def keys(self) -> list[str]:
        return list(self.metadata)


def _request_metadata(ctx: Any) -> dict[str, str]:
    meta = ctx.value(REQ_META_DATA_KEY)
    if meta is None:
        meta = {}
        if isinstance(ctx, ShareContext):
            ctx.set_value(REQ_META_DATA_KEY, meta)
    return meta


def inject(ctx: Any, propagator: Any) -> None:
    """Write the propagator's fields into the request metadata of ``ctx``.

    ``propagator`` needs an ``inject(ctx, carrier)`` method.
    """
    propagator.inject(ctx, MetadataCarrier(_request_metadata(ctx)))


def extract(ctx: Any, propagator: Any) -> Any:
    """Read a span context from the request metadata of ``ctx``.

    ``propagator`` needs an ``extract(ctx, carrier)`` method; its result is returned.
    """
    return propagator.extract(ctx, MetadataCarrier(_request_metadata(ctx)))