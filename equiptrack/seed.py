from typing import List, Optional

from equiptrack.models import Item, ItemFields
from equiptrack.service import InventoryService
from equiptrack.utils.logging import get_logger

logger = get_logger("seed")

DEFAULT_INVENTORY: List[ItemFields] = [
    # Monitors
    ItemFields(name='Dell 32" Monitor', category="Monitors", sub_category='Dell 32" Monitors', count=3),
    ItemFields(name='Dell 24" Monitor', category="Monitors", sub_category='Dell 24" Monitors', count=0),
    ItemFields(name='Dell 30" Monitor', category="Monitors", sub_category='Dell 30" Monitors', count=0),
    # Laptops
    ItemFields(name="Dell Laptop", category="Laptops", sub_category="Dell Laptops", count=30),
    ItemFields(name="London Laptop", category="Laptops", sub_category="London Laptops", count=9),
    # Accessories
    ItemFields(name="Dell Type C Charger", category="Accessories", sub_category="Chargers", count=54),
    ItemFields(name="Dell Quietkey Keyboard", category="Accessories", sub_category="Keyboards", count=39),
    ItemFields(name="Dell USB Optical Mouse", category="Accessories", sub_category="Mice", count=47),
    ItemFields(name="Docking Station", category="Accessories", sub_category="Docks", count=69),
    ItemFields(name="Hardrive", category="Accessories", sub_category="Storage", count=3),
    ItemFields(name="Pendrive", category="Accessories", sub_category="Storage", count=16),
    ItemFields(name="HDMI Cable", category="Accessories", sub_category="Cables", count=7),
    # iPhone Accessories
    ItemFields(name="iPhone 12 Case", category="iPhone Accessories", sub_category="Cases", count=25),
    ItemFields(name="iPhone 13/14 Case", category="iPhone Accessories", sub_category="Cases", count=10),
    ItemFields(name="iPhone XR Case", category="iPhone Accessories", sub_category="Cases", count=1),
    ItemFields(name="iPhone 12/11 Screen Protector", category="iPhone Accessories",
               sub_category="Screen Protectors", count=62),
    ItemFields(name="iPhone 13 Screen Protector", category="iPhone Accessories",
               sub_category="Screen Protectors", count=73),
    ItemFields(name="iPhone XR Screen Protector", category="iPhone Accessories",
               sub_category="Screen Protectors", count=1),
    ItemFields(name="iPhone Charger", category="iPhone Accessories", sub_category="Chargers", count=36),
    ItemFields(name="iPhone Cable", category="iPhone Accessories", sub_category="Cables", count=26),
    # iPhones
    ItemFields(name="iPhone 12", category="iPhones", count=0),
    ItemFields(name="iPhone 13", category="iPhones", count=29),
    # Other
    ItemFields(name="Logitech Headset", category="Accessories", sub_category="Audio", count=19),
    ItemFields(name="Laptop Bag", category="Accessories", sub_category="Bags", count=22),
]


async def seed_default_inventory(service: InventoryService,
                                 actor_id: Optional[str] = None,
                                 items: Optional[List[ItemFields]] = None) -> List[Item]:
    """Create the starting inventory. Does nothing if the ledger already has items."""
    if service.list_items(include_deleted=True):
        logger.info("Ledger already has items; skipping seed")
        return []

    actor_id = actor_id or service.config.SEED_ACTOR_ID
    created = []
    for fields in items if items is not None else DEFAULT_INVENTORY:
        created.append(await service.create_item(fields, actor_id))
    logger.info(f"Seeded {len(created)} items")
    return created
