"""CRM entity type identifiers and product-row owner abbreviations."""

LEAD = 1
DEAL = 2
CONTACT = 3
COMPANY = 4
INVOICE = 5
QUOTE = 7
REQUISITE = 8
ORDER = 14
SMART_INVOICE = 31

DYNAMIC_TYPE_START = 128
DYNAMIC_TYPE_END = 192
DYNAMIC_TYPE_EXTENDED_START = 1030

# crm.item.productrow.* ownerType codes
OWNER_TYPE_ABBREVIATIONS: dict[int, str] = {
    LEAD: "L",
    DEAL: "D",
    QUOTE: "Q",
    SMART_INVOICE: "SI",
}


def is_dynamic_type_id(entity_type_id: int) -> bool:
    """True for smart-process entity type ids."""
    if DYNAMIC_TYPE_START <= entity_type_id < DYNAMIC_TYPE_END:
        return True
    return entity_type_id >= DYNAMIC_TYPE_EXTENDED_START and entity_type_id % 2 == 0


def owner_type_abbreviation(entity_type_id: int) -> str:
    """Owner type code used by product-row methods for an entity type id."""
    if entity_type_id in OWNER_TYPE_ABBREVIATIONS:
        return OWNER_TYPE_ABBREVIATIONS[entity_type_id]
    if is_dynamic_type_id(entity_type_id):
        return f"T{entity_type_id:x}"
    raise ValueError(f"Entity type {entity_type_id} does not support product rows")
