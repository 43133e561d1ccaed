from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

from hue_access.errors import WriteResult
from hue_access.models import Identifier, LightCapabilities, LightState, PutCall


class LightApi(ABC):
    """Read/write contract shared by the bridge and the hub backends."""

    @abstractmethod
    async def assert_connection(self) -> None: ...

    @abstractmethod
    async def get_light_identifier(self, legacy_id: str) -> Identifier: ...

    @abstractmethod
    async def get_group_identifier(self, legacy_id: str) -> Identifier: ...

    @abstractmethod
    async def get_light_identifier_by_name(self, name: str) -> Identifier: ...

    @abstractmethod
    async def get_group_identifier_by_name(self, name: str) -> Identifier: ...

    @abstractmethod
    async def get_light_state(self, light_id: str) -> LightState: ...

    @abstractmethod
    async def get_group_states(self, group_id: str) -> list[LightState]: ...

    async def is_light_off(self, light_id: str) -> bool:
        return (await self.get_light_state(light_id)).is_off

    @abstractmethod
    async def is_group_off(self, group_id: str) -> bool: ...

    @abstractmethod
    async def put_state(self, call: PutCall) -> WriteResult: ...

    @abstractmethod
    async def create_or_update_scene(self, group_id: str, scene_name: str, calls: Sequence[PutCall]) -> str:
        """Store ``calls`` as a named scene of the group; returns the scene id."""

    @abstractmethod
    async def get_group_lights(self, group_id: str) -> list[str]: ...

    @abstractmethod
    async def get_group_name(self, group_id: str) -> str | None: ...

    @abstractmethod
    async def get_scene_name(self, scene_id: str) -> str | None: ...

    @abstractmethod
    async def get_affected_ids_by_scene(self, scene_id: str) -> list[str]: ...

    @abstractmethod
    async def get_affected_ids_by_device(self, device_id: str) -> list[str]: ...

    @abstractmethod
    async def get_assigned_groups(self, light_id: str) -> list[str]: ...

    @abstractmethod
    async def get_light_capabilities(self, light_id: str) -> LightCapabilities: ...

    @abstractmethod
    async def get_group_capabilities(self, group_id: str) -> LightCapabilities: ...

    @abstractmethod
    def on_modification(self, rtype: str | None, rid: str | None, content: Any) -> None: ...

    @abstractmethod
    def clear_caches(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...
