import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pipapal.db.models import EcoTip, RecyclingCenter

logger = logging.getLogger(__name__)

SEED_TIPS = (
    {
        "category": "composting",
        "title": "Composting Kitchen Waste",
        "content": "Turn your kitchen scraps into nutrient-rich soil. Start with a small bin and add fruit and vegetable peels.",
        "icon": "lightbulb",
    },
    {
        "category": "water",
        "title": "Reduce Water Usage",
        "content": "Fix leaky faucets and install low-flow showerheads to save up to 2,700 gallons of water per year.",
        "icon": "tint",
    },
    {
        "category": "shopping",
        "title": "Reusable Shopping Bags",
        "content": "Keep reusable bags in your car or by the door to avoid using plastic bags when shopping.",
        "icon": "shopping-bag",
    },
    {
        "category": "energy",
        "title": "Unplug Electronics",
        "content": "Unplug chargers and appliances when not in use to prevent phantom energy consumption.",
        "icon": "bolt",
    },
    {
        "category": "recycling",
        "title": "Proper Recycling Sorting",
        "content": "Rinse containers before recycling and learn your local recycling guidelines to maximize effectiveness.",
        "icon": "recycle",
    },
)


def _center(name, operator, location, facility_type, waste_types, address, city, county, po_box, lat, lng):
    return {
        "name": name,
        "operator": operator,
        "location": location,
        "facility_type": facility_type,
        "waste_types": waste_types,
        "address": address,
        "city": city,
        "county": county,
        "po_box": po_box,
        "latitude": lat,
        "longitude": lng,
    }


SEED_CENTERS = (
    _center("Kisumu Green Recyclers", "Kisumu County", "Kisumu CBD", "Recycling Facility",
            ["plastic", "paper", "glass", "metal"], "Jomo Kenyatta Highway", "Kisumu", "Kisumu County",
            "P.O Box 11223", -0.1022, 34.7617),
    _center("Eldoret Waste Solutions", "Eldoret Waste Management", "Industrial Area Eldoret", "Waste Processing",
            ["organic", "plastic", "general"], "Uganda Road", "Eldoret", "Uasin Gishu County",
            "P.O Box 66778", 0.5143, 35.2698),
    _center("Mombasa Recyclers", "Mombasa County Government", "Mombasa Island", "Recycling Facility",
            ["plastic", "metal", "electronic"], "Moi Avenue", "Mombasa", "Mombasa County",
            "P.O Box 33221", -4.0435, 39.6682),
    _center("Thika E-Waste Recyclers", "E-Waste Solutions Ltd", "Thika Town", "Electronic Recycling",
            ["electronic", "hazardous"], "Kenyatta Highway", "Thika", "Kiambu County",
            "P.O Box 44556", -1.0396, 37.0834),
    _center("Machakos Green Solutions", "Machakos Environmental Group", "Machakos Town", "Waste Management",
            ["general", "organic", "plastic"], "Machakos-Kitui Road", "Machakos", "Machakos County",
            "P.O Box 00112", -1.5176, 37.2634),
    _center("Naivasha Metal Recyclers", "Lake Basin Recycling Co.", "Naivasha Town", "Metal Recycling",
            ["metal", "electronic"], "Moi South Lake Road", "Naivasha", "Nakuru County",
            "P.O Box 88990", -0.7172, 36.4393),
    _center("Kitui Plastic Recyclers", "Kitui Environmental Conservation", "Kitui Township", "Plastic Recycling",
            ["plastic", "general"], "Kitui-Machakos Road", "Kitui", "Kitui County",
            "P.O Box 99001", -1.3683, 38.0133),
    _center("Malindi Waste Management", "Coastal Recycling Initiative", "Malindi Town", "Waste Management",
            ["general", "organic", "plastic", "paper"], "Malindi-Mombasa Highway", "Malindi", "Kilifi County",
            "P.O Box 33445", -3.2138, 40.1169),
    _center("Kakamega Paper Recyclers", "Western Kenya Recycling", "Kakamega CBD", "Paper Recycling",
            ["paper", "cardboard"], "Kakamega-Kisumu Road", "Kakamega", "Kakamega County",
            "P.O Box 55667", 0.2827, 34.7519),
    _center("Nyeri Compost Center", "Central Kenya Organic Farms", "Nyeri Town", "Organic Waste Processing",
            ["organic", "general"], "Nyeri-Karatina Road", "Nyeri", "Nyeri County",
            "P.O Box 77889", -0.4246, 36.9428),
)


# PUBLIC_INTERFACE
def seed_eco_tips(db: Session) -> int:
    """Insert the starter eco tips when the table is empty. Returns the number inserted."""
    if db.scalar(select(func.count()).select_from(EcoTip)):
        return 0
    db.add_all(EcoTip(**tip) for tip in SEED_TIPS)
    db.commit()
    logger.info("Seeded %d eco tips", len(SEED_TIPS))
    return len(SEED_TIPS)


# PUBLIC_INTERFACE
def seed_recycling_centers(db: Session) -> int:
    """Insert the known recycling centers when the table is empty. Returns the number inserted."""
    if db.scalar(select(func.count()).select_from(RecyclingCenter)):
        return 0
    db.add_all(RecyclingCenter(**center) for center in SEED_CENTERS)
    db.commit()
    logger.info("Seeded %d recycling centers", len(SEED_CENTERS))
    return len(SEED_CENTERS)
