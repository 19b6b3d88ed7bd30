"""Cosmetic inventory models"""
from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import Field

from rewards.models.base import RewardModel
from rewards.models.achievement import RarityTier


class CosmeticCategory(str, Enum):
    """Cosmetic slots; each admits one equipped item"""
    HAT = "hat"
    ACCESSORY = "accessory"
    COLOR = "color"
    BACKGROUND = "background"
    THEME = "theme"


CATEGORY_DECLARATION_ORDER = {category: index for index, category in enumerate(CosmeticCategory)}

# z-order per category, lower draws first
LAYER_ORDER = {
    CosmeticCategory.BACKGROUND: 0,
    CosmeticCategory.COLOR: 1,
    CosmeticCategory.ACCESSORY: 2,
    CosmeticCategory.HAT: 3,
    CosmeticCategory.THEME: 4,
}


class PixelData(RewardModel):
    x: int
    y: int
    color: str


class CosmeticRenderData(RewardModel):
    """Render descriptor for a cosmetic"""
    layer_index: int
    offset_x: int = 0
    offset_y: int = 0
    color_override: Optional[str] = None
    pixels: List[PixelData] = Field(default_factory=list)


class Cosmetic(RewardModel):
    """A cosmetic item definition plus ownership metadata"""
    id: str = Field(min_length=1)
    name: str
    category: CosmeticCategory
    rarity: RarityTier
    preview_url: str = ""
    render_data: CosmeticRenderData
    unlock_condition: str
    unlocked_at: Optional[datetime] = None
    source_achievement: Optional[str] = None


class EquippedCosmetics(RewardModel):
    """Category -> equipped cosmetic id"""
    hat: Optional[str] = None
    accessory: Optional[str] = None
    color: Optional[str] = None
    background: Optional[str] = None
    theme: Optional[str] = None

    def get(self, category: CosmeticCategory) -> Optional[str]:
        return getattr(self, category.value)

    def set(self, category: CosmeticCategory, cosmetic_id: Optional[str]) -> None:
        setattr(self, category.value, cosmetic_id)


class CosmeticInventory(RewardModel):
    """Owned cosmetics and equipped slots"""
    items: List[Cosmetic] = Field(default_factory=list)
    equipped: EquippedCosmetics = Field(default_factory=EquippedCosmetics)
    last_updated: datetime


class CosmeticLayer(RewardModel):
    """One equipped cosmetic, ready for drawing"""
    cosmetic_id: str
    category: CosmeticCategory
    render_data: CosmeticRenderData


class CosmeticStorageData(RewardModel):
    """Persisted cosmetics record"""
    inventory: CosmeticInventory
    last_updated: datetime
