"""A plugin that maps alias service names onto real ones and back."""

from __future__ import annotations

from typing import Any, NamedTuple

ALIAS_APPLIED_KEY = "__aliasAppliedKey"


class _Target(NamedTuple):
    service_path: str
    service_method: str


class AliasPlugin:
    """Rewrites aliased requests to their real service and restores the alias in responses."""

    def __init__(self) -> None:
        self.aliases: dict[str, _Target] = {}
        self.reverse_aliases: dict[str, _Target] = {}

    def alias(
        self,
        alias_service_path: str,
        alias_service_method: str,
        service_path: str,
        service_method: str,
    ) -> None:
        """Make ``alias_service_path.alias_service_method`` call ``service_path.service_method``."""
        self.aliases[f"{alias_service_path}.{alias_service_method}"] = _Target(
            service_path, service_method
        )
        self.reverse_aliases[f"{service_path}.{service_method}"] = _Target(
            alias_service_path, alias_service_method
        )

    def post_read_request(self, ctx: Any, request: Any, error: Any) -> None:
        target = self.aliases.get(f"{request.service_path}.{request.service_method}")
        if target is None:
            return
        request.service_path, request.service_method = target
        if request.metadata is None:
            request.metadata = {}
        request.metadata[ALIAS_APPLIED_KEY] = "true"

    def pre_write_response(self, ctx: Any, request: Any, response: Any) -> None:
        metadata = request.metadata or {}
        if metadata.get(ALIAS_APPLIED_KEY) != "true":
            return
        target = self.reverse_aliases.get(f"{request.service_path}.{request.service_method}")
        if target is None:
            return
        request.service_path, request.service_method = target
        del request.metadata[ALIAS_APPLIED_KEY]
        if response is not None:
            response.service_path, response.service_method = target