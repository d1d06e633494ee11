"""Static choices for bucket setup: seed buckets, suggestions, colors, icons."""

from __future__ import annotations

from typing import Any, Dict, List

DEFAULT_COLOR = "#6b7280"
DEFAULT_ICON = "Wallet"

# Seeded for new owners; exactly one is the default expense destination.
DEFAULT_BUCKETS: List[Dict[str, Any]] = [
    {
        "name": "Savings",
        "slug": "savings",
        "percentage": 20,
        "color": "#22c55e",
        "icon": "PiggyBank",
        "is_default": False,
        "is_system": True,
    },
    {
        "name": "Daily Spending",
        "slug": "daily-spending",
        "percentage": 60,
        "color": "#1A9E9E",
        "icon": "Wallet",
        "is_default": True,
        "is_system": True,
    },
    {
        "name": "Flex",
        "slug": "flex",
        "percentage": 20,
        "color": "#8b5cf6",
        "icon": "Gift",
        "is_default": False,
        "is_system": True,
    },
]

BUCKET_SUGGESTIONS: List[Dict[str, Any]] = DEFAULT_BUCKETS + [
    {
        "name": "Emergency Fund",
        "slug": "emergency-fund",
        "description": "Three to six months of expenses, built up over time.",
        "target_amount": 5000,
        "color": "#3b82f6",
        "icon": "Heart",
    },
    {
        "name": "Travel",
        "slug": "travel",
        "description": "Trips and holidays.",
        "percentage": 10,
        "color": "#f97316",
        "icon": "Plane",
    },
    {
        "name": "Groceries",
        "slug": "groceries",
        "target_amount": 600,
        "color": "#D4A017",
        "icon": "ShoppingCart",
    },
    {
        "name": "Fun Money",
        "slug": "fun-money",
        "percentage": 10,
        "color": "#ec4899",
        "icon": "Gamepad2",
    },
]

BUCKET_COLORS = [
    "#1A9E9E",
    "#E87356",
    "#22c55e",
    "#3b82f6",
    "#8b5cf6",
    "#D4A017",
    "#f97316",
    "#ec4899",
    "#6366f1",
    "#64748b",
]

BUCKET_ICONS = [
    "Wallet",
    "PiggyBank",
    "ShoppingCart",
    "Gamepad2",
    "Car",
    "Plane",
    "Gift",
    "Heart",
    "GraduationCap",
    "Home",
    "Utensils",
    "Film",
    "Music",
    "Dumbbell",
    "Stethoscope",
]

INCOME_FREQUENCIES = ["monthly", "biweekly", "weekly", "quarterly", "yearly", "once"]
BILL_FREQUENCIES = ["monthly", "biweekly", "weekly", "quarterly", "yearly", "once"]
BILL_KINDS = ["bill", "debt", "subscription"]
PAYMENT_MODES = ["manual", "auto_deduct"]
# Variable debts (e.g. a card minimum) are paid a different amount each period
PAYMENT_TYPES = ["fixed", "variable"]


def get_suggestion(slug: str) -> Dict[str, Any]:
    for suggestion in BUCKET_SUGGESTIONS:
        if suggestion["slug"] == slug:
            return dict(suggestion)
    raise KeyError(slug)
