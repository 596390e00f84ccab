"""Prep lists, the recipe book and order lists on top of a key-value store."""

import copy
import logging
import time
import uuid

from storage import KeyValueStore

logger = logging.getLogger(__name__)

PREP_LIST_KEY = "prep-list"
RECIPES_KEY = "recipes-book"
ORDER_LIST_KEY = "order-list"
ORDER_HISTORY_KEY = "order-history"

# Bump this when DEFAULT_CATEGORIES changes to reset stored data
RECIPES_VERSION = 2

IMPORTED_CATEGORY_ID = "imported"

DRAWERS = [
    {"name": "Freezer", "icon": "i-heroicons-cube", "items": ["Tuna", "Beef"]},
    {"name": "Tuna Tartar", "icon": "i-heroicons-sparkles",
     "items": ["Cut Tuna", "Cut Tomatoes", "Tomatoes", "Dressing", "Mustard", "Pre-Dressing"]},
    {"name": "Cheese", "icon": "i-heroicons-cake",
     "items": ["Blue Cheese", "Goat Cheese", "Other cheese", "Figs", "Burratas"]},
    {"name": "Tiramisu", "icon": "i-heroicons-gift", "items": ["Tiramisu Slided"]},
    {"name": "Grilled Leak", "icon": "i-heroicons-fire",
     "items": ["Grilled Leak", "Leak", "Leak Dressing", "Vinaigrette", "Boil eggs", "Eggs", "Parsley"]},
    {"name": "Beef Tartar", "icon": "i-heroicons-star",
     "items": ["Cut Beef", "Danish Mayo", "Pickled Mushrooms"]},
    {"name": "Pumpkin", "icon": "i-heroicons-sun",
     "items": ["Roasted Pumpkin", "Pomegranate", "Goat Cheese", "Yogurt Dressing", "Jalapeño Pepper",
               "Capers in box"]},
    {"name": "Potatoes", "icon": "i-heroicons-square-3-stack-3d",
     "items": ["Potatoes", "Ali Oli", "Bravas", "Capers", "Truffle Paste"]},
    {"name": "Truffle Pasta", "icon": "i-heroicons-bolt",
     "items": ["Truffle Sauce", "Mushrooms for pasta", "Parmesan Cheese", "Truffle Butter", "Black Truffle"]},
    {"name": "Padrons", "icon": "i-heroicons-beaker", "items": ["Padrons Peppers", "Garlic Oil"]},
    {"name": "Bolognese", "icon": "i-heroicons-heart", "items": ["Bolognese", "Brown Butter", "Vesterhavcst"]},
    {"name": "Cold Section", "icon": "i-heroicons-archive-box",
     "items": ["Panko", "Mushrooms powder", "Paprika", "Wheat", "Nuts", "Salt", "Olive Oil"]},
]

DEFAULT_CATEGORIES = [
    {
        "id": "test-category",
        "name": "Test",
        "icon": "i-heroicons-beaker",
        "recipes": [
            {"id": "test-1", "name": "Test", "ingredients": ["Water", "Hala Madrid"],
             "instructions": "Win 15 champions"},
        ],
    },
    {"id": "appetizers", "name": "Appetizers", "icon": "i-heroicons-sparkles", "recipes": []},
    {"id": "main-courses", "name": "Main Courses", "icon": "i-heroicons-fire", "recipes": []},
    {"id": "desserts", "name": "Desserts", "icon": "i-heroicons-cake", "recipes": []},
]


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_prep_list() -> list[dict]:
    """Returns the default drawers with every item unchecked."""
    return [
        {
            "name": drawer["name"],
            "icon": drawer["icon"],
            "items": [{"name": item, "checked": False} for item in drawer["items"]],
        }
        for drawer in DRAWERS
    ]


def default_recipes_book() -> dict:
    return {
        "categories": copy.deepcopy(DEFAULT_CATEGORIES),
        "version": RECIPES_VERSION,
        "updatedAt": _now_ms(),
    }


# =============================================================================
# PREP LIST
# =============================================================================

def get_prep_list(store: KeyValueStore) -> dict | None:
    return store.get(PREP_LIST_KEY)


def save_prep_list(store: KeyValueStore, drawers: list) -> dict:
    data = {"drawers": drawers, "updatedAt": _now_ms()}
    store.set(PREP_LIST_KEY, data)
    return data


# =============================================================================
# RECIPE BOOK
# =============================================================================

def get_recipes_book(store: KeyValueStore) -> dict | None:
    return store.get(RECIPES_KEY)


def save_recipes_book(store: KeyValueStore, categories: list, version: int | None) -> dict:
    data = {"categories": categories, "version": version, "updatedAt": _now_ms()}
    store.set(RECIPES_KEY, data)
    logger.info(f"Saved recipe book: {len(categories or [])} categories, version {version}")
    return data


def _current_book(store: KeyValueStore) -> dict:
    book = get_recipes_book(store)
    if not book or (book.get("version") or 0) < RECIPES_VERSION:
        return default_recipes_book()
    return book


def import_recipe(
    store: KeyValueStore,
    name: str,
    ingredients: list[str],
    instructions: str,
    category_id: str = IMPORTED_CATEGORY_ID,
) -> dict:
    """
    Adds a recipe to a category of the stored recipe book.
    Unknown category ids land in an "Imported" category.
    """
    book = _current_book(store)
    categories = book.setdefault("categories", [])

    category = next((c for c in categories if c.get("id") == category_id), None)
    if category is None:
        category = next((c for c in categories if c.get("id") == IMPORTED_CATEGORY_ID), None)
    if category is None:
        category = {"id": IMPORTED_CATEGORY_ID, "name": "Imported", "icon": "i-heroicons-link", "recipes": []}
        categories.append(category)

    recipe = {
        "id": uuid.uuid4().hex,
        "name": name or "Untitled recipe",
        "ingredients": list(ingredients),
        "instructions": instructions,
    }
    category.setdefault("recipes", []).append(recipe)

    save_recipes_book(store, categories, book.get("version", RECIPES_VERSION))
    logger.info(f"Imported recipe '{recipe['name']}' into {category['id']}")
    return recipe


# =============================================================================
# ORDERS
# =============================================================================

def get_order_list(store: KeyValueStore) -> list[str]:
    return store.get(ORDER_LIST_KEY) or []


def save_order_list(store: KeyValueStore, items: list | None) -> None:
    store.set(ORDER_LIST_KEY, items or [])


def add_order_history(store: KeyValueStore, item: str | None) -> dict:
    """Remembers an ordered item once, ignoring case."""
    trimmed = item.strip() if isinstance(item, str) else ""
    if not trimmed:
        return {"success": False, "error": "Item is required"}

    existing = store.get(ORDER_HISTORY_KEY) or []
    if any(e.lower() == trimmed.lower() for e in existing):
        return {"success": True, "duplicate": True}

    existing.append(trimmed)
    store.set(ORDER_HISTORY_KEY, existing)
    return {"success": True, "duplicate": False}
