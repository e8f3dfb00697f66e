"""Typed capability descriptors and the per-execution tool table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

LOGGER = logging.getLogger(__name__)

EMPTY_SCHEMA: Dict[str, Any] = {"type": "object", "properties": {}}


@dataclass(frozen=True)
class CapabilityDescriptor:
    """A tool offered by one capability provider.

    Attributes:
        name: Tool name as exposed to the model
        provider_id: Provider (MCP server) that executes the tool
        description: Text shown to the model
        input_schema: JSON schema of the arguments
        remote_name: Name on the provider when the tool is aliased
    """

    name: str
    provider_id: str
    description: str = ""
    input_schema: Mapping[str, Any] = field(default_factory=lambda: dict(EMPTY_SCHEMA))
    remote_name: Optional[str] = None

    @property
    def provider_tool_name(self) -> str:
        return self.remote_name or self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "provider_id": self.provider_id,
            "description": self.description,
            "input_schema": dict(self.input_schema),
            "remote_name": self.remote_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CapabilityDescriptor":
        return cls(
            name=data["name"],
            provider_id=data["provider_id"],
            description=data.get("description") or "",
            input_schema=dict(data.get("input_schema") or EMPTY_SCHEMA),
            remote_name=data.get("remote_name"),
        )

    def to_openai_tool(self) -> Dict[str, Any]:
        """Function-calling schema accepted by ``BaseChatModel.bind_tools``."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description or f"Tool '{self.name}' from provider '{self.provider_id}'",
                "parameters": dict(self.input_schema) or dict(EMPTY_SCHEMA),
            },
        }


class ToolTable(Mapping[str, CapabilityDescriptor]):
    """Immutable name → descriptor table resolved once per execution.

    When two providers expose the same tool name the first one wins.
    """

    def __init__(self, descriptors: Iterable[CapabilityDescriptor] = ()):
        table: Dict[str, CapabilityDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in table:
                LOGGER.warning(
                    f"Duplicate tool '{descriptor.name}' from {descriptor.provider_id} ignored "
                    f"(already provided by {table[descriptor.name].provider_id})"
                )
                continue
            table[descriptor.name] = descriptor
        self._table = MappingProxyType(table)

    @classmethod
    def resolve(cls, catalog: Optional[Iterable[Union[CapabilityDescriptor, Mapping[str, Any]]]]) -> "ToolTable":
        """Build a table from descriptors or their dict form."""
        descriptors: List[CapabilityDescriptor] = []
        for item in catalog or ():
            descriptors.append(item if isinstance(item, CapabilityDescriptor) else CapabilityDescriptor.from_dict(item))
        return cls(descriptors)

    @classmethod
    def from_state(cls, data: Optional[Mapping[str, Mapping[str, Any]]]) -> "ToolTable":
        return cls(CapabilityDescriptor.from_dict(item) for item in (data or {}).values())

    def to_state(self) -> Dict[str, Dict[str, Any]]:
        return {name: descriptor.to_dict() for name, descriptor in self._table.items()}

    def __getitem__(self, name: str) -> CapabilityDescriptor:
        return self._table[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        return f"ToolTable({list(self._table)})"
