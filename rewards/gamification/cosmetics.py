"""
Cosmetic Inventory

Owns the companion's unlocked cosmetics and what is currently equipped:
- Id-based dedup on every addition
- One equipped item per category
- Ordered render layers for the presentation layer

Every inventory addition and every equip/unequip is written through to
storage before the call returns.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from rewards.exceptions import RecordNotFoundError, SchemaValidationError
from rewards.gamification.catalog import COSMETIC_CATALOG, COSMETICS_BY_ID
from rewards.models.achievement import RarityTier
from rewards.models.cosmetic import (
    CATEGORY_DECLARATION_ORDER,
    Cosmetic,
    CosmeticCategory,
    CosmeticInventory,
    CosmeticLayer,
    CosmeticStorageData,
    EquippedCosmetics,
)
from rewards.storage.record_store import COSMETICS_KEY, RecordStore, validate_record
from rewards.utils.datetime_helpers import Clock, now_utc

logger = logging.getLogger(__name__)


def _layer_sort_key(layer: CosmeticLayer):
    return (layer.render_data.layer_index, CATEGORY_DECLARATION_ORDER[layer.category])


class CosmeticService:
    """Cosmetic inventory with write-through persistence"""

    def __init__(self, store: RecordStore, clock: Clock = now_utc):
        self.store = store
        self._clock = clock
        self._lock = asyncio.Lock()
        self._inventory = CosmeticInventory(last_updated=clock())

    # ==========================================================================
    # Loading
    # ==========================================================================

    async def initialize(self) -> None:
        """
        Load the persisted inventory.

        Invalid items are dropped, the rest are kept. Equipped ids that no
        longer point at an owned item are cleared.
        """
        raw = await self.store.read_raw(COSMETICS_KEY)
        if raw is None:
            logger.info("No stored cosmetic inventory, starting empty")
            return

        try:
            inventory = validate_record(COSMETICS_KEY, raw, CosmeticStorageData).inventory
        except SchemaValidationError:
            inventory = self._salvage(raw)

        owned_ids = {item.id for item in inventory.items}
        dangling = False
        for category in CosmeticCategory:
            equipped_id = inventory.equipped.get(category)
            if equipped_id is not None and equipped_id not in owned_ids:
                logger.warning(f"Clearing dangling equipped {category.value}: {equipped_id}")
                inventory.equipped.set(category, None)
                dangling = True

        self._inventory = inventory
        if dangling:
            await self._persist()

        logger.info(f"Loaded {len(inventory.items)} cosmetics")

    def _salvage(self, raw: Any) -> CosmeticInventory:
        inventory_raw = raw.get("inventory") if isinstance(raw, dict) else None
        if not isinstance(inventory_raw, dict):
            return CosmeticInventory(last_updated=self._clock())

        items: List[Cosmetic] = []
        seen = set()
        raw_items = inventory_raw.get("items")
        for entry in raw_items if isinstance(raw_items, list) else []:
            try:
                item = Cosmetic.model_validate(entry)
            except PydanticValidationError:
                logger.warning(f"Dropping malformed cosmetic entry: {entry!r:.80}")
                continue
            if item.id not in seen:
                seen.add(item.id)
                items.append(item)

        try:
            equipped = EquippedCosmetics.model_validate(inventory_raw.get("equipped") or {})
        except PydanticValidationError:
            logger.warning("Equipped slots unreadable, clearing them")
            equipped = EquippedCosmetics()

        return CosmeticInventory(items=items, equipped=equipped, last_updated=self._clock())

    # ==========================================================================
    # Inventory
    # ==========================================================================

    async def add_to_inventory(self, cosmetic: Cosmetic, source_achievement: Optional[str] = None) -> bool:
        """
        Add a cosmetic if it is not already owned.

        Returns:
            True if added, False if it was already in the inventory
        """
        async with self._lock:
            return await self._add(cosmetic, source_achievement) is not None

    async def grant_cosmetic(self, cosmetic_id: str, source_achievement: Optional[str] = None) -> Optional[Cosmetic]:
        """
        Look up a catalog cosmetic and add it to the inventory.

        Returns:
            The newly owned cosmetic, or None when the id is unknown or already owned
        """
        definition = COSMETICS_BY_ID.get(cosmetic_id)
        if definition is None:
            logger.warning(f"Cosmetic not found in catalog: {cosmetic_id}")
            return None

        async with self._lock:
            return await self._add(definition, source_achievement)

    async def _add(self, cosmetic: Cosmetic, source_achievement: Optional[str]) -> Optional[Cosmetic]:
        if self._find(cosmetic.id) is not None:
            logger.debug(f"Cosmetic already owned: {cosmetic.id}")
            return None

        owned = cosmetic.model_copy(deep=True, update={
            "unlocked_at": self._clock(),
            "source_achievement": source_achievement or cosmetic.source_achievement,
        })
        self._inventory.items.append(owned)
        await self._persist()

        logger.info(f"Added cosmetic to inventory: {owned.id}")
        return owned.model_copy(deep=True)

    # ==========================================================================
    # Equip / Unequip
    # ==========================================================================

    async def equip_cosmetic(self, cosmetic_id: str) -> bool:
        """
        Equip an owned cosmetic, replacing whatever held its category slot.

        Returns:
            False if the cosmetic is not owned
        """
        async with self._lock:
            item = self._find(cosmetic_id)
            if item is None:
                logger.warning(f"Cannot equip unowned cosmetic: {cosmetic_id}")
                return False

            self._inventory.equipped.set(item.category, item.id)
            await self._persist()

        logger.info(f"Equipped {item.category.value}: {cosmetic_id}")
        return True

    async def unequip_cosmetic(self, cosmetic_id: str) -> bool:
        """
        Clear the slot holding this cosmetic.

        Returns:
            False if the cosmetic is not owned or not equipped
        """
        async with self._lock:
            item = self._find(cosmetic_id)
            if item is None:
                logger.warning(f"Cannot unequip unowned cosmetic: {cosmetic_id}")
                return False
            if self._inventory.equipped.get(item.category) != cosmetic_id:
                return False

            self._inventory.equipped.set(item.category, None)
            await self._persist()

        logger.info(f"Unequipped {item.category.value}: {cosmetic_id}")
        return True

    # ==========================================================================
    # Rendering
    # ==========================================================================

    def get_cosmetic_layers(self) -> List[CosmeticLayer]:
        """Equipped render descriptors in draw order"""
        return self._layers_for(self._inventory.equipped)

    def get_preview_layers(self, cosmetic_id: str) -> List[CosmeticLayer]:
        """Draw order with cosmetic_id tried on in its slot, owned or not"""
        definition = self._find(cosmetic_id) or COSMETICS_BY_ID.get(cosmetic_id)
        if definition is None:
            raise RecordNotFoundError(
                f"Cosmetic not found: {cosmetic_id}",
                record_type="cosmetic",
                record_id=cosmetic_id,
                operation="get_preview_layers",
            )

        preview = self._inventory.equipped.model_copy()
        preview.set(definition.category, definition.id)
        return self._layers_for(preview, extra={definition.id: definition})

    def _layers_for(self, equipped: EquippedCosmetics, extra: Optional[Dict[str, Cosmetic]] = None) -> List[CosmeticLayer]:
        layers = []
        for category in CosmeticCategory:
            cosmetic_id = equipped.get(category)
            if cosmetic_id is None:
                continue
            item = self._find(cosmetic_id) or (extra or {}).get(cosmetic_id)
            if item is None:
                continue
            layers.append(CosmeticLayer(
                cosmetic_id=item.id,
                category=item.category,
                render_data=item.render_data.model_copy(deep=True),
            ))
        # sorted() is stable; category iteration already follows declaration order
        return sorted(layers, key=_layer_sort_key)

    # ==========================================================================
    # Queries
    # ==========================================================================

    def get_inventory(self) -> CosmeticInventory:
        return self._inventory.model_copy(deep=True)

    def get_equipped_cosmetics(self) -> EquippedCosmetics:
        return self._inventory.equipped.model_copy()

    def is_owned(self, cosmetic_id: str) -> bool:
        return self._find(cosmetic_id) is not None

    def is_equipped(self, cosmetic_id: str) -> bool:
        item = self._find(cosmetic_id)
        return item is not None and self._inventory.equipped.get(item.category) == cosmetic_id

    def get_by_category(self, category: CosmeticCategory) -> List[Cosmetic]:
        return [c.model_copy(deep=True) for c in self._inventory.items if c.category == category]

    def get_by_rarity(self, rarity: RarityTier) -> List[Cosmetic]:
        return [c.model_copy(deep=True) for c in self._inventory.items if c.rarity == rarity]

    def get_all_cosmetics(self) -> List[Cosmetic]:
        """Full catalog; owned entries carry their unlock metadata"""
        return [
            (self._find(definition.id) or definition).model_copy(deep=True)
            for definition in COSMETIC_CATALOG
        ]

    def get_statistics(self) -> Dict[str, Any]:
        """
        Ownership summary.

        Returns:
            {
                'total_owned': int,
                'total_available': int,
                'completion_percentage': float,
                'by_category': {category: owned count},
                'by_rarity': {rarity: owned count}
            }
        """
        total_owned = len(self._inventory.items)
        total_available = len(COSMETIC_CATALOG)
        return {
            "total_owned": total_owned,
            "total_available": total_available,
            "completion_percentage": (100 * total_owned / total_available) if total_available else 0.0,
            "by_category": {
                category.value: sum(1 for c in self._inventory.items if c.category == category)
                for category in CosmeticCategory
            },
            "by_rarity": {
                rarity.value: sum(1 for c in self._inventory.items if c.rarity == rarity)
                for rarity in RarityTier
            },
        }

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def to_storage_data(self) -> CosmeticStorageData:
        now = self._clock()
        inventory = self._inventory.model_copy(deep=True, update={"last_updated": now})
        return CosmeticStorageData(inventory=inventory, last_updated=now)

    async def _persist(self) -> bool:
        self._inventory.last_updated = self._clock()
        return await self.store.save(COSMETICS_KEY, self.to_storage_data())

    def _find(self, cosmetic_id: str) -> Optional[Cosmetic]:
        for item in self._inventory.items:
            if item.id == cosmetic_id:
                return item
        return None
