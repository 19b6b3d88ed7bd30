"""
Static reward catalogs

Achievement and cosmetic definitions are read-only at runtime. Engines copy
them and attach earned/unlocked metadata; the definitions themselves are
never mutated.
"""

from typing import Dict, List, Optional

from rewards.models.achievement import (
    Achievement,
    AchievementCategory,
    ComparisonType,
    RarityTier,
    UnlockCondition,
    UnlockConditionType,
)
from rewards.models.cosmetic import (
    LAYER_ORDER,
    Cosmetic,
    CosmeticCategory,
    CosmeticRenderData,
    PixelData,
)


def _achievement(
    id: str,
    name: str,
    description: str,
    category: AchievementCategory,
    rarity: RarityTier,
    condition_type: UnlockConditionType,
    threshold: float,
    comparison: ComparisonType = ComparisonType.AT_LEAST,
    cosmetic_rewards: Optional[List[str]] = None,
) -> Achievement:
    return Achievement(
        id=id,
        name=name,
        description=description,
        category=category,
        rarity=rarity,
        icon_url=f"achievements/{id}.png",
        unlock_condition=UnlockCondition(type=condition_type, threshold=threshold, comparison=comparison),
        cosmetic_rewards=cosmetic_rewards or [],
    )


# ============================================
# Achievement Catalog
# ============================================

ACHIEVEMENT_CATALOG: List[Achievement] = [
    # ========== HEALTH MILESTONES (daily steps) ==========
    _achievement(
        "steps_5000", "First Steps", "Walk 5,000 steps in a single day",
        AchievementCategory.HEALTH_MILESTONES, RarityTier.COMMON,
        UnlockConditionType.STEPS, 5000,
    ),
    _achievement(
        "steps_10000", "Step Champion", "Walk 10,000 steps in a single day",
        AchievementCategory.HEALTH_MILESTONES, RarityTier.COMMON,
        UnlockConditionType.STEPS, 10000, cosmetic_rewards=["hat_crown"],
    ),
    _achievement(
        "steps_15000", "Marathon Walker", "Walk 15,000 steps in a single day",
        AchievementCategory.HEALTH_MILESTONES, RarityTier.RARE,
        UnlockConditionType.STEPS, 15000, cosmetic_rewards=["accessory_medal"],
    ),
    _achievement(
        "steps_20000", "Ultra Walker", "Walk 20,000 steps in a single day",
        AchievementCategory.HEALTH_MILESTONES, RarityTier.EPIC,
        UnlockConditionType.STEPS, 20000, cosmetic_rewards=["color_gold"],
    ),
    _achievement(
        "steps_30000", "Legendary Strider", "Walk 30,000 steps in a single day",
        AchievementCategory.HEALTH_MILESTONES, RarityTier.LEGENDARY,
        UnlockConditionType.STEPS, 30000, cosmetic_rewards=["theme_golden"],
    ),

    # ========== STREAK REWARDS (driven by the streak milestone ladder) ==========
    _achievement(
        "streak_7", "Week Warrior", "Maintain a 7-day health streak",
        AchievementCategory.STREAK_REWARDS, RarityTier.COMMON,
        UnlockConditionType.STREAK, 7, ComparisonType.CONSECUTIVE, ["hat_headband"],
    ),
    _achievement(
        "streak_14", "Fortnight Fighter", "Maintain a 14-day health streak",
        AchievementCategory.STREAK_REWARDS, RarityTier.RARE,
        UnlockConditionType.STREAK, 14, ComparisonType.CONSECUTIVE, ["accessory_cape"],
    ),
    _achievement(
        "streak_30", "Monthly Master", "Maintain a 30-day health streak",
        AchievementCategory.STREAK_REWARDS, RarityTier.EPIC,
        UnlockConditionType.STREAK, 30, ComparisonType.CONSECUTIVE, ["background_stars"],
    ),
    _achievement(
        "streak_60", "Dedication Champion", "Maintain a 60-day health streak",
        AchievementCategory.STREAK_REWARDS, RarityTier.EPIC,
        UnlockConditionType.STREAK, 60, ComparisonType.CONSECUTIVE, ["color_rainbow"],
    ),
    _achievement(
        "streak_90", "Legendary Dedication", "Maintain a 90-day health streak",
        AchievementCategory.STREAK_REWARDS, RarityTier.LEGENDARY,
        UnlockConditionType.STREAK, 90, ComparisonType.CONSECUTIVE, ["theme_legendary"],
    ),

    # ========== CHALLENGE COMPLETION ==========
    _achievement(
        "challenge_first", "Challenge Accepted", "Complete your first weekly challenge",
        AchievementCategory.CHALLENGE_COMPLETION, RarityTier.COMMON,
        UnlockConditionType.CHALLENGE, 1,
    ),
    _achievement(
        "challenge_5", "Challenge Seeker", "Complete 5 weekly challenges",
        AchievementCategory.CHALLENGE_COMPLETION, RarityTier.RARE,
        UnlockConditionType.CHALLENGE, 5, cosmetic_rewards=["accessory_trophy"],
    ),
    _achievement(
        "challenge_weekly_all", "Perfect Week", "Complete all challenges in a single week",
        AchievementCategory.CHALLENGE_COMPLETION, RarityTier.EPIC,
        UnlockConditionType.CUSTOM, 1, ComparisonType.EXACT, ["hat_champion"],
    ),

    # ========== EXPLORATION ==========
    _achievement(
        "explore_customization", "Fashion Forward", "Equip your first cosmetic item",
        AchievementCategory.EXPLORATION, RarityTier.COMMON,
        UnlockConditionType.CUSTOM, 1, ComparisonType.EXACT,
    ),
    _achievement(
        "explore_evolution", "Evolution Witness", "Witness your companion's first evolution",
        AchievementCategory.EXPLORATION, RarityTier.RARE,
        UnlockConditionType.EVOLUTION, 1, cosmetic_rewards=["background_evolution"],
    ),

    # ========== SPECIAL EVENTS ==========
    _achievement(
        "special_halloween", "Spooky Spirit", "Be active during Halloween season",
        AchievementCategory.SPECIAL_EVENTS, RarityTier.RARE,
        UnlockConditionType.CUSTOM, 1, ComparisonType.EXACT, ["hat_witch", "background_haunted"],
    ),
]

ACHIEVEMENTS_BY_ID: Dict[str, Achievement] = {a.id: a for a in ACHIEVEMENT_CATALOG}

WEEKLY_BONUS_ACHIEVEMENT_ID = "challenge_weekly_all"
FIRST_EQUIP_ACHIEVEMENT_ID = "explore_customization"


# ============================================
# Cosmetic Catalog
# ============================================

def _cosmetic(
    id: str,
    name: str,
    category: CosmeticCategory,
    rarity: RarityTier,
    unlock_condition: str,
    offset_x: int = 0,
    offset_y: int = 0,
    color_override: Optional[str] = None,
    pixels: Optional[List[PixelData]] = None,
) -> Cosmetic:
    return Cosmetic(
        id=id,
        name=name,
        category=category,
        rarity=rarity,
        preview_url=f"cosmetics/{id}.png",
        render_data=CosmeticRenderData(
            layer_index=LAYER_ORDER[category],
            offset_x=offset_x,
            offset_y=offset_y,
            color_override=color_override,
            pixels=pixels or [],
        ),
        unlock_condition=unlock_condition,
    )


def _row(y: int, xs: range, color: str) -> List[PixelData]:
    return [PixelData(x=x, y=y, color=color) for x in xs]


COSMETIC_CATALOG: List[Cosmetic] = [
    # Hats
    _cosmetic(
        "hat_crown", "Royal Crown", CosmeticCategory.HAT, RarityTier.COMMON, "steps_10000",
        offset_y=-10, pixels=_row(0, range(4, 7), "#FFD700") + _row(2, range(3, 8), "#FFD700"),
    ),
    _cosmetic(
        "hat_headband", "Fitness Headband", CosmeticCategory.HAT, RarityTier.COMMON, "streak_7",
        offset_y=-5, pixels=_row(0, range(2, 9), "#FF6B6B"),
    ),
    _cosmetic(
        "hat_witch", "Witch Hat", CosmeticCategory.HAT, RarityTier.RARE, "special_halloween",
        offset_y=-12, pixels=_row(0, range(5, 6), "#2D1B4E") + _row(3, range(2, 9), "#2D1B4E"),
    ),
    _cosmetic(
        "hat_champion", "Champion Crown", CosmeticCategory.HAT, RarityTier.EPIC, "challenge_weekly_all",
        offset_y=-10, pixels=_row(1, range(4, 7), "#FFD700") + _row(2, range(3, 8), "#9333EA"),
    ),

    # Accessories
    _cosmetic(
        "accessory_medal", "Gold Medal", CosmeticCategory.ACCESSORY, RarityTier.RARE, "steps_15000",
        offset_y=8,
    ),
    _cosmetic(
        "accessory_cape", "Hero Cape", CosmeticCategory.ACCESSORY, RarityTier.RARE, "streak_14",
        offset_x=-2, offset_y=2,
    ),
    _cosmetic(
        "accessory_trophy", "Mini Trophy", CosmeticCategory.ACCESSORY, RarityTier.RARE, "challenge_5",
        offset_x=8, offset_y=4,
    ),

    # Colors
    _cosmetic(
        "color_gold", "Golden Glow", CosmeticCategory.COLOR, RarityTier.EPIC, "steps_20000",
        color_override="#FFD700",
    ),
    _cosmetic(
        "color_rainbow", "Rainbow Spirit", CosmeticCategory.COLOR, RarityTier.EPIC, "streak_60",
        color_override="rainbow",
    ),

    # Backgrounds
    _cosmetic("background_stars", "Starry Night", CosmeticCategory.BACKGROUND, RarityTier.EPIC, "streak_30"),
    _cosmetic(
        "background_evolution", "Evolution Aura", CosmeticCategory.BACKGROUND, RarityTier.RARE,
        "explore_evolution",
    ),
    _cosmetic(
        "background_haunted", "Haunted Mist", CosmeticCategory.BACKGROUND, RarityTier.RARE,
        "special_halloween",
    ),

    # Themes
    _cosmetic("theme_golden", "Golden Theme", CosmeticCategory.THEME, RarityTier.LEGENDARY, "steps_30000"),
    _cosmetic("theme_legendary", "Legendary Theme", CosmeticCategory.THEME, RarityTier.LEGENDARY, "streak_90"),
]

COSMETICS_BY_ID: Dict[str, Cosmetic] = {c.id: c for c in COSMETIC_CATALOG}
