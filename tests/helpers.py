"""Builders for synthetic power log lines."""

GS = "[Power] GameState.DebugPrintPower() -"
PTL = "[Power] PowerTaskList.DebugPrintPower() -"

EFFECT_CARD_ID = "System.Collections.Generic.List`1[System.String]"


def card(name, entity_id, player=1, card_id="", zone="PLAY", zone_pos=1):
    return f"[entityName={name} id={entity_id} zone={zone} zonePos={zone_pos} cardId={card_id} player={player}]"


def indent(depth):
    return " " * (4 * depth + 1)


def block_start(block_type, entity, target="0", trigger_keyword=None, depth=0, prefix=GS):
    line = (
        f"{prefix}{indent(depth)}BLOCK_START BlockType={block_type} Entity={entity} "
        f"EffectCardId={EFFECT_CARD_ID} EffectIndex=0 Target={target} SubOption=-1"
    )
    if trigger_keyword:
        line += f" TriggerKeyword={trigger_keyword}"
    return line


def block_end(depth=0, prefix=GS):
    return f"{prefix}{indent(depth)}BLOCK_END"


def tag_change(entity, tag, value, depth=1, prefix=GS):
    return f"{prefix}{indent(depth)}TAG_CHANGE Entity={entity} tag={tag} value={value}"


def meta_data(meta, data, depth=1):
    return f"{GS}{indent(depth)}META_DATA - Meta={meta} Data={data} InfoCount=1"


def full_entity(entity_id, card_id="", tags=(), depth=1, action="Creating"):
    lines = [f"{GS}{indent(depth)}FULL_ENTITY - {action} ID={entity_id} CardID={card_id}"]
    for tag, value in tags:
        lines.append(f"{GS}{indent(depth + 1)}tag={tag} value={value}")
    return lines


def show_entity(entity, card_id, tags=(), depth=1):
    lines = [f"{GS}{indent(depth)}SHOW_ENTITY - Updating Entity={entity} CardID={card_id}"]
    for tag, value in tags:
        lines.append(f"{GS}{indent(depth + 1)}tag={tag} value={value}")
    return lines


def sub_spell_start(depth=1):
    return f"{GS}{indent(depth)}SUB_SPELL_START - SpellPrefabGUID=Fireball_Missile:abc123 Source=20 TargetCount=1"


def sub_spell_end(depth=1):
    return f"{GS}{indent(depth)}SUB_SPELL_END"
