"""Unit tests for the cosmetic inventory (rewards/gamification/cosmetics.py)"""
import pytest

from rewards.exceptions import RecordNotFoundError
from rewards.gamification.catalog import COSMETIC_CATALOG, COSMETICS_BY_ID
from rewards.gamification.cosmetics import CosmeticService
from rewards.models.achievement import RarityTier
from rewards.models.cosmetic import CosmeticCategory
from rewards.storage.record_store import COSMETICS_KEY


# ============================================================================
# Inventory
# ============================================================================

@pytest.mark.asyncio
async def test_grant_adds_once(cosmetics, clock):
    """Granting an owned cosmetic is a no-op"""
    first = await cosmetics.grant_cosmetic("hat_crown", source_achievement="steps_10000")
    second = await cosmetics.grant_cosmetic("hat_crown", source_achievement="steps_10000")

    assert first.id == "hat_crown"
    assert first.unlocked_at == clock()
    assert first.source_achievement == "steps_10000"
    assert second is None
    assert [c.id for c in cosmetics.get_inventory().items] == ["hat_crown"]


@pytest.mark.asyncio
async def test_add_to_inventory_dedups_by_id(cosmetics):
    crown = COSMETICS_BY_ID["hat_crown"]

    assert await cosmetics.add_to_inventory(crown) is True
    assert await cosmetics.add_to_inventory(crown) is False
    assert len(cosmetics.get_inventory().items) == 1


@pytest.mark.asyncio
async def test_grant_unknown_cosmetic_returns_none(cosmetics):
    assert await cosmetics.grant_cosmetic("hat_does_not_exist") is None
    assert cosmetics.get_inventory().items == []


@pytest.mark.asyncio
async def test_inventory_is_written_through(cosmetics, read_raw):
    await cosmetics.grant_cosmetic("hat_crown")

    stored = await read_raw(COSMETICS_KEY)

    assert [item["id"] for item in stored["inventory"]["items"]] == ["hat_crown"]
    assert "lastUpdated" in stored


# ============================================================================
# Equip / Unequip
# ============================================================================

@pytest.mark.asyncio
async def test_equip_requires_ownership(cosmetics):
    assert await cosmetics.equip_cosmetic("hat_crown") is False
    assert cosmetics.get_equipped_cosmetics().hat is None


@pytest.mark.asyncio
async def test_equip_replaces_slot_holder(cosmetics):
    await cosmetics.grant_cosmetic("hat_crown")
    await cosmetics.grant_cosmetic("hat_headband")

    await cosmetics.equip_cosmetic("hat_crown")
    await cosmetics.equip_cosmetic("hat_headband")

    assert cosmetics.get_equipped_cosmetics().hat == "hat_headband"
    assert cosmetics.is_equipped("hat_headband")
    assert not cosmetics.is_equipped("hat_crown")


@pytest.mark.asyncio
async def test_unequip_only_clears_when_equipped(cosmetics, read_raw):
    await cosmetics.grant_cosmetic("hat_crown")
    await cosmetics.grant_cosmetic("hat_headband")
    await cosmetics.equip_cosmetic("hat_crown")

    assert await cosmetics.unequip_cosmetic("hat_headband") is False
    assert await cosmetics.unequip_cosmetic("hat_unknown") is False
    assert await cosmetics.unequip_cosmetic("hat_crown") is True

    stored = await read_raw(COSMETICS_KEY)
    assert stored["inventory"]["equipped"]["hat"] is None


# ============================================================================
# Rendering
# ============================================================================

@pytest.mark.asyncio
async def test_layers_follow_draw_order(cosmetics):
    """Background draws first, hat above color"""
    for cosmetic_id in ("hat_crown", "color_gold", "background_stars"):
        await cosmetics.grant_cosmetic(cosmetic_id)
        await cosmetics.equip_cosmetic(cosmetic_id)

    layers = cosmetics.get_cosmetic_layers()

    assert [layer.cosmetic_id for layer in layers] == ["background_stars", "color_gold", "hat_crown"]
    assert [layer.render_data.layer_index for layer in layers] == [0, 1, 3]


@pytest.mark.asyncio
async def test_no_layers_when_nothing_equipped(cosmetics):
    await cosmetics.grant_cosmetic("hat_crown")
    assert cosmetics.get_cosmetic_layers() == []


@pytest.mark.asyncio
async def test_preview_swaps_slot_without_equipping(cosmetics):
    await cosmetics.grant_cosmetic("hat_crown")
    await cosmetics.grant_cosmetic("background_stars")
    await cosmetics.equip_cosmetic("hat_crown")
    await cosmetics.equip_cosmetic("background_stars")

    preview = cosmetics.get_preview_layers("hat_witch")

    assert [layer.cosmetic_id for layer in preview] == ["background_stars", "hat_witch"]
    assert cosmetics.get_equipped_cosmetics().hat == "hat_crown"
    assert not cosmetics.is_owned("hat_witch")


def test_preview_unknown_cosmetic_raises(cosmetics):
    with pytest.raises(RecordNotFoundError):
        cosmetics.get_preview_layers("hat_nope")


# ============================================================================
# Loading
# ============================================================================

@pytest.mark.asyncio
async def test_reload_restores_inventory_and_slots(cosmetics, record_store, clock):
    await cosmetics.grant_cosmetic("hat_crown", source_achievement="steps_10000")
    await cosmetics.equip_cosmetic("hat_crown")

    reloaded = CosmeticService(record_store, clock=clock)
    await reloaded.initialize()

    assert reloaded.is_owned("hat_crown")
    assert reloaded.is_equipped("hat_crown")
    assert reloaded.get_inventory().items[0].source_achievement == "steps_10000"


@pytest.mark.asyncio
async def test_initialize_clears_dangling_equipped_ids(cosmetics, record_store, clock, read_raw, write_raw):
    await cosmetics.grant_cosmetic("hat_crown")
    stored = await read_raw(COSMETICS_KEY)
    stored["inventory"]["equipped"]["hat"] = "hat_witch"
    await write_raw(COSMETICS_KEY, stored)

    reloaded = CosmeticService(record_store, clock=clock)
    await reloaded.initialize()

    assert reloaded.get_equipped_cosmetics().hat is None
    assert (await read_raw(COSMETICS_KEY))["inventory"]["equipped"]["hat"] is None


@pytest.mark.asyncio
async def test_initialize_salvages_valid_items(cosmetics, record_store, clock, read_raw, write_raw):
    """Malformed and duplicate entries are dropped, valid ones kept"""
    await cosmetics.grant_cosmetic("hat_crown")
    await cosmetics.grant_cosmetic("color_gold")
    stored = await read_raw(COSMETICS_KEY)
    items = stored["inventory"]["items"]
    items.append({"id": "", "name": "broken"})
    items.append(dict(items[0]))
    await write_raw(COSMETICS_KEY, stored)

    reloaded = CosmeticService(record_store, clock=clock)
    await reloaded.initialize()

    assert [c.id for c in reloaded.get_inventory().items] == ["hat_crown", "color_gold"]


@pytest.mark.asyncio
async def test_initialize_with_garbage_starts_empty(record_store, clock, write_raw):
    await write_raw(COSMETICS_KEY, "not json at all")

    service = CosmeticService(record_store, clock=clock)
    await service.initialize()

    assert service.get_inventory().items == []


# ============================================================================
# Queries
# ============================================================================

@pytest.mark.asyncio
async def test_statistics_and_filters(cosmetics):
    await cosmetics.grant_cosmetic("hat_crown")
    await cosmetics.grant_cosmetic("hat_headband")
    await cosmetics.grant_cosmetic("color_gold")

    stats = cosmetics.get_statistics()

    assert stats["total_owned"] == 3
    assert stats["total_available"] == len(COSMETIC_CATALOG)
    assert stats["completion_percentage"] == pytest.approx(300 / len(COSMETIC_CATALOG))
    assert stats["by_category"]["hat"] == 2
    assert stats["by_rarity"]["epic"] == 1
    assert [c.id for c in cosmetics.get_by_category(CosmeticCategory.HAT)] == ["hat_crown", "hat_headband"]
    assert [c.id for c in cosmetics.get_by_rarity(RarityTier.EPIC)] == ["color_gold"]


@pytest.mark.asyncio
async def test_all_cosmetics_marks_owned_entries(cosmetics):
    await cosmetics.grant_cosmetic("hat_crown")

    catalog = {c.id: c for c in cosmetics.get_all_cosmetics()}

    assert len(catalog) == len(COSMETIC_CATALOG)
    assert catalog["hat_crown"].unlocked_at is not None
    assert catalog["hat_witch"].unlocked_at is None
