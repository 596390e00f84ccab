"""Local ingredient-name parsing without AI."""

import logging
import re

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

# Accept a local result only when it is shorter than this share of the input
SHORTENING_RATIO = 0.9

# Inputs up to this length without a quantity are already bare names
SHORT_INPUT_LENGTH = 20

UNITS = (
    "g", "kg", "ml", "l", "oz", "lb", "lbs",
    "cup", "cups", "tsp", "tbsp",
    "teaspoon", "teaspoons", "tablespoon", "tablespoons",
    "bunch", "bunches", "pinch", "pinches",
    "can", "cans", "piece", "pieces", "slice", "slices",
    "large", "medium", "small",
    "clove", "cloves", "head", "heads", "stalk", "stalks",
    "sprig", "sprigs", "handful", "handfuls",
)

PREP_KEYWORDS = (
    "chopped", "diced", "sliced", "minced", "crushed", "grated", "peeled", "trimmed",
    "roughly", "finely", "thinly", "freshly",
    "to taste", "optional", "room temperature", "at room temperature",
    "softened", "melted", "beaten", "whisked", "sifted", "divided",
    "plus more", "for serving", "for garnish", "as needed",
)


def _alternation(words: tuple[str, ...]) -> str:
    # Longest first so "cloves" is tried before "clove"
    return "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))


# Quantity + unit at the start, e.g. "200g ", "2 cups ", "1/2 tsp ", "large "
QUANTITY_PATTERN = re.compile(
    rf"^[\d\s/.,]*\s*(?:{_alternation(UNITS)})s?\s+",
    re.IGNORECASE,
)

# Preparation clause to the end, e.g. ", finely diced", " to taste"
PREP_SUFFIX_PATTERN = re.compile(
    rf",?\s*(?:{_alternation(PREP_KEYWORDS)}).*$",
    re.IGNORECASE,
)

# Parenthetical notes, e.g. "(about 2 cups)", "(optional)"
PARENTHETICAL_PATTERN = re.compile(r"\s*\([^)]*\)\s*")

_WHITESPACE = re.compile(r"\s+")


class InvalidIngredientError(TypeError):
    """Raised when an ingredient is not a string."""
    pass


def normalize_ingredient(raw: str) -> str | None:
    """
    Strips quantity, unit, preparation notes and parentheticals from an
    ingredient line, e.g. "2 cloves garlic, minced" -> "garlic".

    Returns None when the line cannot be shortened safely; the caller is
    expected to fall back to AI parsing in that case.

    Raises:
        InvalidIngredientError: If raw is not a string
    """
    if not isinstance(raw, str):
        raise InvalidIngredientError(f"Ingredient must be a string, got {type(raw).__name__}")

    result = raw.strip()
    result = PARENTHETICAL_PATTERN.sub(" ", result)
    result = QUANTITY_PATTERN.sub("", result, count=1)
    result = PREP_SUFFIX_PATTERN.sub("", result, count=1)
    result = _WHITESPACE.sub(" ", result).strip()

    if result and len(result) < len(raw) * SHORTENING_RATIO:
        return result

    if raw.strip() and len(raw) <= SHORT_INPUT_LENGTH and not QUANTITY_PATTERN.search(raw):
        return raw.strip()

    logger.debug(f"Could not normalize ingredient locally: {raw!r}")
    return None
