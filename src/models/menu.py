"""Menu, vendor and saved-address row types read by the order services."""

from typing import TypedDict


class MealTimePrice(TypedDict, total=False):
    """Per meal-time price of a menu, smallest currency unit."""

    breakfast: int
    lunch: int
    dinner: int


class Menu(TypedDict):
    """Subset of the menus table used for refund math and analytics."""

    id: str
    vendor_id: str
    name: str
    price: MealTimePrice
    created_at: str


class Vendor(TypedDict):
    """Vendors table row linking a vendor to its login."""

    id: str
    user_id: str
    name: str


class MealTimeWindow(TypedDict, total=False):
    """Delivery window preference for one meal-time."""

    enabled: bool
    preferred_time_slot: str | None


class SavedAddress(TypedDict):
    """Customer's saved delivery address (delivery_addresses table)."""

    id: str
    user_id: str
    street: str
    city: str
    zip: str
    meal_time_windows: dict[str, MealTimeWindow]
