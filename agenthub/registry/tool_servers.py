from collections.abc import Iterable
from types import MappingProxyType
from typing import Any

from agenthub.models.errors import ToolServerConfigError, UnknownToolServerError
from agenthub.models.tools import OAUTH_PLACEHOLDER_PREFIX, ToolServerDescriptor, ToolServerInfo


class ToolServerRegistry:
    """
    Holds the tool server descriptors available to agents.

    The registry is constructed once with every descriptor and cannot be changed
    afterwards. Each descriptor is validated on the way in.
    """

    def __init__(self, descriptors: Iterable[ToolServerDescriptor] = ()) -> None:
        entries: dict[str, ToolServerDescriptor] = {}
        for descriptor in descriptors:
            self._validate_descriptor_instance(descriptor)
            self._validate_duplicate_identifier(descriptor, entries)
            self._validate_header_placeholders(descriptor)
            entries[descriptor.identifier] = descriptor
        self._descriptors = MappingProxyType(entries)

    def _validate_descriptor_instance(self, descriptor: Any) -> None:
        """Checks if the provided object is a ToolServerDescriptor."""
        if not isinstance(descriptor, ToolServerDescriptor):
            raise ToolServerConfigError(
                f"Provided object is not a ToolServerDescriptor: {type(descriptor)}"
            )

    def _validate_duplicate_identifier(
        self, descriptor: ToolServerDescriptor, entries: dict[str, ToolServerDescriptor]
    ) -> None:
        if descriptor.identifier in entries:
            raise ToolServerConfigError(
                f"Tool server '{descriptor.identifier}' already registered.",
                {"server": descriptor.identifier},
            )

    def _validate_header_placeholders(self, descriptor: ToolServerDescriptor) -> None:
        """An OAuth placeholder must name a provider."""
        for name, value in descriptor.headers.items():
            if value == OAUTH_PLACEHOLDER_PREFIX:
                raise ToolServerConfigError(
                    f"Tool server '{descriptor.identifier}' header '{name}' has an empty "
                    "OAuth provider placeholder.",
                    {"server": descriptor.identifier, "header": name},
                )

    def get(self, identifier: str) -> ToolServerDescriptor | None:
        """
        Retrieves a descriptor by identifier.

        Returns:
            The descriptor if registered, otherwise None.
        """
        return self._descriptors.get(identifier)

    def require(self, identifier: str) -> ToolServerDescriptor:
        """Like `get`, but raises UnknownToolServerError for unregistered identifiers."""
        descriptor = self._descriptors.get(identifier)
        if descriptor is None:
            raise UnknownToolServerError(identifier)
        return descriptor

    def identifiers(self) -> list[str]:
        return list(self._descriptors.keys())

    def describe(self) -> list[ToolServerInfo]:
        """Public summaries of the registered servers, without connection secrets."""
        return [
            ToolServerInfo(
                identifier=d.identifier,
                description=d.description,
                transport=d.transport,
                oauth_provider=d.oauth_provider,
            )
            for d in self._descriptors.values()
        ]

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)
