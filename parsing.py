"""Recipe and ingredient parsing: local rules first, AI as fallback."""

import json
import logging
import re
from dataclasses import dataclass, field

from config import DEFAULT_INGREDIENT_PROMPT, DEFAULT_RECIPE_PROMPT
from extractor import (
    MIN_CONTENT_LENGTH,
    SOURCE_AI,
    SOURCE_SCHEMA,
    ExtractedRecipe,
    extract,
    fetch_html,
)
from inference import InferenceClient, InferenceError
from ingredients import normalize_ingredient

logger = logging.getLogger(__name__)

MAX_RECIPE_TEXT = 50000
MAX_AUDIO_BYTES = 10 * 1024 * 1024

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class RecipeParseError(ValueError):
    """Raised when recipe text cannot be turned into a recipe."""
    pass


class InsufficientContentError(RecipeParseError):
    """Raised when a page has too little text to parse."""
    pass


class TranscriptionError(ValueError):
    """Raised when audio cannot be transcribed."""
    pass


@dataclass
class IngredientResult:
    item: str
    original: str
    used_ai: bool = False

    def to_dict(self) -> dict:
        return {"item": self.item, "original": self.original, "usedAI": self.used_ai}


@dataclass
class ParsedRecipe:
    ingredients: list[str] = field(default_factory=list)
    instructions: str = ""


@dataclass
class Transcription:
    transcription: str
    ingredients: list[str] = field(default_factory=list)
    instructions: str = ""

    def to_dict(self) -> dict:
        return {
            "transcription": self.transcription,
            "ingredients": self.ingredients,
            "instructions": self.instructions,
        }


def parse_ingredient(
    raw: str,
    inference: InferenceClient | None = None,
    prompt: str = DEFAULT_INGREDIENT_PROMPT,
) -> IngredientResult:
    """
    Resolves an ingredient line to its base name.
    Local regex rules first (fast, free), then the AI, then the line itself.
    """
    local = normalize_ingredient(raw)
    if local:
        return IngredientResult(item=local, original=raw)

    if inference is not None:
        try:
            answer = inference.infer([
                {"role": "system", "content": prompt},
                {"role": "user", "content": f'Extract the ingredient name from: "{raw}"'},
            ]).strip()
        except InferenceError:
            logger.exception("AI ingredient parsing failed")
        else:
            if answer and len(answer) < len(raw):
                return IngredientResult(item=answer, original=raw, used_ai=True)
            logger.info(f"Rejected AI ingredient answer: {answer!r}")

    return IngredientResult(item=raw.strip(), original=raw)


def _parse_ai_recipe(response_text: str) -> ParsedRecipe | None:
    """Parses the AI reply into a ParsedRecipe."""
    match = _JSON_OBJECT.search(response_text)
    if not match:
        logger.warning("No JSON found in AI response")
        return None

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning(f"Could not parse JSON: {e}: {match.group(0)[:500]}")
        return None

    if not isinstance(data, dict):
        return None

    ingredients = data.get("ingredients")
    instructions = data.get("instructions")
    if not isinstance(ingredients, list) or not isinstance(instructions, str):
        logger.warning(
            f"Invalid structure - ingredients: {type(ingredients).__name__}, "
            f"instructions: {type(instructions).__name__}"
        )
        return None

    return ParsedRecipe(
        ingredients=[i for i in ingredients if isinstance(i, str) and i.strip()],
        instructions=instructions.strip(),
    )


def parse_recipe_with_ai(
    inference: InferenceClient | None,
    content: str,
    prompt: str = DEFAULT_RECIPE_PROMPT,
) -> ParsedRecipe | None:
    """Extracts ingredients and instructions from free text. None on any failure."""
    if inference is None:
        logger.info("No AI available for recipe parsing")
        return None

    logger.info(f"Calling AI with content length: {len(content)}")
    try:
        response_text = inference.infer([
            {"role": "system", "content": prompt},
            {"role": "user", "content": f"Parse this recipe:\n\n{content}"},
        ])
    except InferenceError:
        logger.exception("AI recipe parsing failed")
        return None

    if not response_text.strip():
        logger.warning("Empty AI response")
        return None

    parsed = _parse_ai_recipe(response_text)
    if parsed:
        logger.info(
            f"Parsed recipe - ingredients: {len(parsed.ingredients)}, "
            f"instructions length: {len(parsed.instructions)}"
        )
    return parsed


def parse_recipe_text(
    inference: InferenceClient | None,
    content: str,
    prompt: str = DEFAULT_RECIPE_PROMPT,
) -> ParsedRecipe:
    """
    Parses pasted or uploaded recipe text.

    Raises:
        RecipeParseError: For empty or oversized content, or if the AI fails
    """
    if not content or not content.strip():
        raise RecipeParseError("content is required")
    if len(content) > MAX_RECIPE_TEXT:
        raise RecipeParseError(f"Content too long (max {MAX_RECIPE_TEXT} characters)")

    parsed = parse_recipe_with_ai(inference, content, prompt)
    if parsed is None:
        raise RecipeParseError("Failed to parse recipe. Please try again or enter manually.")
    return parsed


def recipe_from_html(
    html: str,
    inference: InferenceClient | None,
    prompt: str = DEFAULT_RECIPE_PROMPT,
) -> ExtractedRecipe:
    """
    Turns a fetched page into a recipe: schema if present, AI on the text otherwise.

    Raises:
        InsufficientContentError: If the page has too little text
        RecipeParseError: If the AI cannot parse the text
    """
    recipe = extract(html)
    if recipe.source == SOURCE_SCHEMA:
        return recipe

    plain_text = recipe.plain_text or ""
    if len(plain_text) < MIN_CONTENT_LENGTH:
        raise InsufficientContentError("Could not extract recipe content from this URL")

    parsed = parse_recipe_with_ai(inference, plain_text, prompt)
    if parsed is None:
        raise RecipeParseError("Could not parse recipe from this page. Try a different URL.")

    # The AI prompt does not ask for a name
    return ExtractedRecipe(
        name="",
        ingredients=parsed.ingredients,
        instructions=parsed.instructions,
        source=SOURCE_AI,
    )


def parse_recipe_url(
    url: str,
    inference: InferenceClient | None,
    prompt: str = DEFAULT_RECIPE_PROMPT,
) -> ExtractedRecipe:
    """
    Fetches a recipe page and extracts its recipe.

    Raises:
        FetchError: If the page cannot be fetched
        InsufficientContentError: If the page has too little text
        RecipeParseError: If the AI cannot parse the text
    """
    html = fetch_html(url)
    return recipe_from_html(html, inference, prompt)


def transcribe_recipe(
    inference: InferenceClient | None,
    audio: bytes,
    mime_type: str,
    prompt: str = DEFAULT_RECIPE_PROMPT,
) -> Transcription:
    """
    Transcribes a spoken recipe and parses the transcription.

    Raises:
        TranscriptionError: For missing/oversized audio or failed transcription
    """
    if not audio:
        raise TranscriptionError("Audio file is required")
    if len(audio) > MAX_AUDIO_BYTES:
        raise TranscriptionError("Audio file too large (max 10MB)")
    if inference is None:
        raise TranscriptionError("Audio transcription not available (AI not configured)")

    try:
        text = inference.transcribe(audio, mime_type).strip()
    except InferenceError as e:
        raise TranscriptionError("Failed to process audio. Please try again.") from e

    if not text:
        raise TranscriptionError("Failed to transcribe audio. Please try again.")

    parsed = parse_recipe_with_ai(inference, text, prompt)
    if parsed is None:
        return Transcription(transcription=text)
    return Transcription(
        transcription=text,
        ingredients=parsed.ingredients,
        instructions=parsed.instructions,
    )
