"""Home Assistant entity model and the in-memory entity store."""
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...constants import BINARY_DOMAINS, CONTROLLABLE_DOMAINS, DEFAULT_ENTITY_ICON, DOMAIN_ICONS


class Entity(BaseModel):
    """A state object as returned by `/api/states` and `state_changed` events."""
    entity_id: str
    state: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    last_changed: Optional[str] = None
    last_updated: Optional[str] = None
    context: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def domain(self) -> str:
        return self.entity_id.split(".", 1)[0]

    @property
    def friendly_name(self) -> str:
        return self.attributes.get("friendly_name") or self.entity_id

    @property
    def icon(self) -> str:
        if self.attributes.get("icon"):
            return self.attributes["icon"]
        return DOMAIN_ICONS.get(self.domain, DEFAULT_ENTITY_ICON)

    @property
    def display_state(self) -> str:
        unit = self.attributes.get("unit_of_measurement")
        if unit:
            return f"{self.state} {unit}"
        if self.domain in BINARY_DOMAINS:
            return "On" if self.state == "on" else "Off"
        if self.domain == "climate":
            return f"{self.state} ({self.attributes.get('current_temperature')}°)"
        return self.state

    @property
    def is_controllable(self) -> bool:
        return self.domain in CONTROLLABLE_DOMAINS

    def to_view(self) -> Dict[str, Any]:
        """Raw state plus the derived fields the widgets render."""
        view = self.model_dump()
        view.update(
            domain=self.domain,
            friendly_name=self.friendly_name,
            icon=self.icon,
            display_state=self.display_state,
            is_controllable=self.is_controllable,
        )
        return view


class EntityStore:
    """
    Current entity states keyed by entity id.

    A full fetch replaces the whole map; realtime events touch only the
    entity they name.
    """

    def __init__(self):
        self._entities: Dict[str, Entity] = {}

    def replace_all(self, entities: Iterable[Entity]) -> None:
        self._entities = {entity.entity_id: entity for entity in entities}

    def patch(self, entity: Entity) -> None:
        self._entities[entity.entity_id] = entity

    def remove(self, entity_id: str) -> Optional[Entity]:
        return self._entities.pop(entity_id, None)

    def get(self, entity_id: str) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def all(self, domain: Optional[str] = None) -> List[Entity]:
        entities = sorted(self._entities.values(), key=lambda e: e.entity_id)
        if domain:
            entities = [e for e in entities if e.domain == domain]
        return entities

    def clear(self) -> None:
        self._entities.clear()

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._entities
