"""Static card lookups for zone tracking.

Only quests and secrets are needed: both enter the SECRET zone, and the
tracker has to tell them apart and know which class they belong to.
"""

from typing import NamedTuple, Optional


class QuestInfo(NamedTuple):
    card_class: str
    requirement: int
    sidequest: bool


QUESTS: dict[str, QuestInfo] = {
    # Descent of Dragons sidequests
    "DRG_008": QuestInfo("PALADIN", 5, True),
    "DRG_051": QuestInfo("DRUID", 10, True),
    "DRG_251": QuestInfo("HUNTER", 3, True),
    "DRG_255": QuestInfo("HUNTER", 3, True),
    "DRG_258": QuestInfo("HUNTER", 1, True),
    "DRG_317": QuestInfo("DRUID", 2, True),
    "DRG_323": QuestInfo("MAGE", 8, True),
    "DRG_324": QuestInfo("MAGE", 2, True),
    # Saviors of Uldum
    "ULD_131": QuestInfo("DRUID", 4, False),
    "ULD_140": QuestInfo("WARLOCK", 20, False),
    "ULD_155": QuestInfo("HUNTER", 20, False),
    "ULD_291": QuestInfo("SHAMAN", 6, False),
    "ULD_326": QuestInfo("ROGUE", 4, False),
    "ULD_431": QuestInfo("PALADIN", 5, False),
    "ULD_433": QuestInfo("MAGE", 10, False),
    "ULD_711": QuestInfo("WARRIOR", 5, False),
    "ULD_724": QuestInfo("PRIEST", 15, False),
    # Journey to Un'Goro
    "UNG_028": QuestInfo("MAGE", 8, False),
    "UNG_067": QuestInfo("ROGUE", 5, False),
    "UNG_116": QuestInfo("DRUID", 5, False),
    "UNG_829": QuestInfo("WARLOCK", 6, False),
    "UNG_920": QuestInfo("HUNTER", 7, False),
    "UNG_934": QuestInfo("WARRIOR", 7, False),
    "UNG_940": QuestInfo("PRIEST", 7, False),
    "UNG_942": QuestInfo("SHAMAN", 10, False),
    "UNG_954": QuestInfo("PALADIN", 6, False),
}

SECRETS: dict[str, str] = {
    # Hunter
    "EX1_533": "HUNTER",  # Misdirection
    "EX1_554": "HUNTER",  # Snake Trap
    "EX1_609": "HUNTER",  # Snipe
    "EX1_610": "HUNTER",  # Explosive Trap
    "EX1_611": "HUNTER",  # Freezing Trap
    "AT_060": "HUNTER",  # Bear Trap
    "LOE_021": "HUNTER",  # Dart Trap
    "KAR_004": "HUNTER",  # Cat Trick
    # Mage
    "EX1_287": "MAGE",  # Counterspell
    "EX1_289": "MAGE",  # Ice Barrier
    "EX1_294": "MAGE",  # Mirror Entity
    "EX1_295": "MAGE",  # Ice Block
    "EX1_594": "MAGE",  # Vaporize
    "tt_010": "MAGE",  # Spellbender
    "FP1_018": "MAGE",  # Duplicate
    "AT_002": "MAGE",  # Effigy
    # Paladin
    "EX1_130": "PALADIN",  # Noble Sacrifice
    "EX1_132": "PALADIN",  # Eye for an Eye
    "EX1_136": "PALADIN",  # Redemption
    "EX1_379": "PALADIN",  # Repentance
    "FP1_020": "PALADIN",  # Avenge
    "AT_073": "PALADIN",  # Competitive Spirit
    "GIL_903": "PALADIN",  # Hidden Wisdom
    "DAL_570": "PALADIN",  # Never Surrender!
    "BOT_908": "PALADIN",  # Autodefense Matrix
    # Rogue
    "LOOT_204": "ROGUE",  # Cheat Death
    "LOOT_210": "ROGUE",  # Sudden Betrayal
    "LOOT_214": "ROGUE",  # Evasion
}


def get_quest(card_id: Optional[str]) -> Optional[QuestInfo]:
    """Look up a quest or sidequest by card id."""
    if not card_id:
        return None
    return QUESTS.get(card_id)


def get_secret_class(card_id: Optional[str]) -> Optional[str]:
    """Class of a secret by card id, or None if it isn't a known secret."""
    if not card_id:
        return None
    return SECRETS.get(card_id)
