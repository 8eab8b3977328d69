"""
Zone Ordering Policies Registry.

Zones are edited smallest-first so early precise edits are not overwritten
by a sloppy large-zone generation. "Small" is estimated by a policy key; the
policy is chosen by name in PipelineConfig.

Built-in policies:
    instruction_length: Length of the instruction text
    mask_area: Pixel area of the mask's bounding box

Classes:
    ZoneOrderingRegistry: Registry for ordering policies

Functions:
    get_default_registry: Get the global default registry (singleton)
    register_default_policies: Register the built-in policies
    order_zones: Sort zones with a named policy from the default registry
"""

from typing import Any, Callable, Dict, List, Optional, Sequence
import logging

from ZR_Libs.constants import ORDERING_INSTRUCTION_LENGTH, ORDERING_MASK_AREA
from ZR_Libs.ImageEditingLib.mask_compositor import mask_bounding_box_area

logger = logging.getLogger(__name__)

# Type alias for an ordering key: zone -> sortable complexity estimate
OrderingKey = Callable[[Any], float]


def instruction_length_key(zone: Any) -> float:
    return float(len(zone.instruction.strip()))


def mask_area_key(zone: Any) -> float:
    if zone.mask is None:
        return 0.0
    return float(mask_bounding_box_area(zone.mask))


class ZoneOrderingRegistry:
    """
    Registry for zone ordering policies.

    Example:
        >>> registry = ZoneOrderingRegistry()
        >>> registry.register("instruction_length", instruction_length_key)
        >>> ordered = registry.order("instruction_length", zones)
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._keys: Dict[str, OrderingKey] = {}
        self._descriptions: Dict[str, str] = {}

    def register(self, name: str, key: OrderingKey, description: str = "") -> None:
        """
        Register an ordering policy.

        Raises:
            ValueError: If name is empty or key is not callable
            RuntimeError: If name is already registered
        """
        name = str(name).strip()

        if not name:
            raise ValueError("policy name cannot be empty")

        if not callable(key):
            raise ValueError(f"key must be callable, got {type(key)}")

        if name in self._keys:
            raise RuntimeError(
                f"Ordering policy '{name}' is already registered. "
                f"Use unregister() first to replace it."
            )

        self._keys[name] = key
        self._descriptions[name] = str(description)
        logger.debug(f"Registered ordering policy: {name}")

    def unregister(self, name: str) -> bool:
        name = str(name).strip()
        if name in self._keys:
            del self._keys[name]
            del self._descriptions[name]
            logger.debug(f"Unregistered ordering policy: {name}")
            return True
        return False

    def get_key(self, name: str) -> OrderingKey:
        """
        Raises:
            KeyError: If the policy is not registered
        """
        name = str(name).strip()
        if name not in self._keys:
            available = ", ".join(self.list_policies())
            raise KeyError(
                f"No ordering policy registered as '{name}'. "
                f"Available policies: {available}"
            )
        return self._keys[name]

    def has_policy(self, name: str) -> bool:
        return str(name).strip() in self._keys

    def list_policies(self) -> List[str]:
        return sorted(self._keys.keys())

    def describe(self, name: str) -> str:
        self.get_key(name)
        return self._descriptions[str(name).strip()]

    def order(self, name: str, zones: Sequence[Any]) -> List[Any]:
        """Sort zones ascending by the policy key; ties keep input order."""
        key = self.get_key(name)
        return sorted(zones, key=key)


_default_registry: Optional[ZoneOrderingRegistry] = None


def get_default_registry() -> ZoneOrderingRegistry:
    """Get the global default registry, creating it on first call."""
    global _default_registry

    if _default_registry is None:
        _default_registry = ZoneOrderingRegistry()
        register_default_policies(_default_registry)

    return _default_registry


def register_default_policies(registry: ZoneOrderingRegistry) -> None:
    registry.register(
        ORDERING_INSTRUCTION_LENGTH,
        instruction_length_key,
        description="Shorter instructions first",
    )
    registry.register(
        ORDERING_MASK_AREA,
        mask_area_key,
        description="Smaller mask bounding boxes first",
    )


def order_zones(zones: Sequence[Any], policy: str) -> List[Any]:
    return get_default_registry().order(policy, zones)
