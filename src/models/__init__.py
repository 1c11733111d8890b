"""Database model type definitions."""

from src.models.menu import Menu, SavedAddress, Vendor
from src.models.order import MealStatusEntry, Order, OrderItem, Refund

__all__ = [
    "Menu",
    "Vendor",
    "SavedAddress",
    "Order",
    "OrderItem",
    "MealStatusEntry",
    "Refund",
]
