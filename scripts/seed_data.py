#!/usr/bin/env python3
"""Populate an empty database with room types, rooms, kitchens, tables and a menu."""
from hotelops.database import Base, SessionLocal, engine
from hotelops.models import Kitchen, KitchenKind, MenuItem, RestaurantTable, Room, RoomType

ROOM_TYPES = [
    ("Standard Room", "Comfortable room with essential amenities", 2000.00, 2, ["AC", "TV", "WiFi"]),
    ("Deluxe Room", "Spacious room with mountain view", 3500.00, 3, ["AC", "LED TV", "WiFi", "Mini Bar"]),
    ("Suite", "Separate living area and balcony", 5500.00, 4, ["AC", "LED TV", "WiFi", "Mini Bar", "Balcony"]),
    ("Family Room", "Connecting beds for families", 4200.00, 6, ["AC", "TV", "WiFi", "Extra Beds"]),
]

# (table number, capacity, location)
TABLES = [
    ("1", 2, "indoor"), ("2", 4, "indoor"), ("3", 6, "indoor"),
    ("6", 4, "outdoor"), ("7", 6, "outdoor"), ("8", 8, "outdoor"),
    ("10", 2, "sky_bar"), ("11", 4, "sky_bar"),
]

MENU = {
    "Main Kitchen": [
        ("Paneer Tikka", "Appetizers", 320.00),
        ("Dal Makhani", "Main Course", 380.00),
        ("Butter Chicken", "Main Course", 480.00),
        ("Gulab Jamun", "Desserts", 180.00),
    ],
    "Sky Bar": [
        ("Mojito", "Cocktails", 450.00),
        ("Fresh Lime Soda", "Beverages", 150.00),
    ],
}


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if db.query(RoomType).first():
            print("Database already seeded.")
            return

        for floor, (name, description, price, occupancy, amenities) in enumerate(ROOM_TYPES, start=1):
            room_type = RoomType(
                name=name,
                description=description,
                base_price=price,
                max_occupancy=occupancy,
                amenities=amenities,
            )
            db.add(room_type)
            for number in range(1, 5):
                db.add(Room(room_number=f"{floor}0{number}", floor=floor, room_type=room_type))

        kitchens = {}
        for kitchen_name in MENU:
            kind = KitchenKind.BAR if "Bar" in kitchen_name else KitchenKind.KITCHEN
            kitchens[kind] = Kitchen(name=kitchen_name, kind=kind)
            db.add(kitchens[kind])
        db.flush()

        for kitchen in kitchens.values():
            for item_name, category, price in MENU[kitchen.name]:
                db.add(MenuItem(name=item_name, category=category, price=price, kitchen_id=kitchen.id))

        for number, capacity, location in TABLES:
            kitchen = kitchens[KitchenKind.BAR if location == "sky_bar" else KitchenKind.KITCHEN]
            db.add(RestaurantTable(table_number=number, capacity=capacity, location=location, kitchen_id=kitchen.id))

        db.commit()
        print(f"Seeded {len(ROOM_TYPES)} room types, {len(TABLES)} tables and {len(MENU)} kitchens.")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
