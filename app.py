#!/usr/bin/env python3
"""Kitchen Prep web API."""

import functools
import hmac
import logging
import sys

from flask import Flask, jsonify, request

from config import DEFAULT_PIN_CODE, Config, load_config
from extractor import FetchError, is_valid_url
from file_parsers import UnsupportedFileError, extract_text_from_file
from inference import InferenceClient, create_inference
from kitchen import (
    add_order_history,
    get_prep_list,
    get_recipes_book,
    save_order_list,
    save_prep_list,
    save_recipes_book,
)
from parsing import (
    MAX_AUDIO_BYTES,
    MAX_RECIPE_TEXT,
    InsufficientContentError,
    RecipeParseError,
    TranscriptionError,
    parse_ingredient,
    parse_recipe_text,
    parse_recipe_url,
    transcribe_recipe,
)
from storage import JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)

AUTH_COOKIE = "prep-auth"
AUTH_VALUE = "verified"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


class ApiError(Exception):
    """An error returned to the client as JSON."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def no_cache(view):
    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        response = jsonify(view(*args, **kwargs))
        response.headers.update(NO_CACHE_HEADERS)
        return response
    return wrapper


def create_app(
    config: Config,
    store: KeyValueStore | None = None,
    inference: InferenceClient | None = None,
) -> Flask:
    """Creates and configures the Flask application."""
    app = Flask(__name__)

    if store is None:
        store = JsonFileStore(config.storage.path)

    @app.errorhandler(ApiError)
    def handle_api_error(error: ApiError):
        return jsonify({"statusCode": error.status_code, "message": error.message}), error.status_code

    @app.before_request
    def check_auth():
        """Everything under /api except /api/auth needs the PIN cookie."""
        if not request.path.startswith("/api/") or request.path.startswith("/api/auth/"):
            return None
        if request.cookies.get(AUTH_COOKIE) != AUTH_VALUE:
            raise ApiError(401, "Unauthorized")
        return None

    # === Auth ===

    @app.post("/api/auth/verify")
    def verify_pin():
        pin = _json_body().get("pin")
        if isinstance(pin, int) and not isinstance(pin, bool):
            pin = str(pin)
        if not isinstance(pin, str) or not hmac.compare_digest(
            pin.encode(), config.server.pin_code.encode()
        ):
            logger.warning("PIN check failed")
            return jsonify({"success": False})

        response = jsonify({"success": True})
        response.set_cookie(
            AUTH_COOKIE, AUTH_VALUE, httponly=True, max_age=config.server.cookie_max_age
        )
        return response

    @app.get("/api/auth/check")
    def check_pin():
        return jsonify({"authenticated": request.cookies.get(AUTH_COOKIE) == AUTH_VALUE})

    # === Prep list ===

    @app.get("/api/list")
    def read_list():
        return jsonify(get_prep_list(store))

    @app.post("/api/list")
    def write_list():
        drawers = _json_body().get("drawers")
        if not isinstance(drawers, list):
            raise ApiError(400, "drawers is required")
        save_prep_list(store, drawers)
        return jsonify({"success": True})

    # === Recipe book ===

    @app.get("/api/recipes")
    @no_cache
    def read_recipes():
        recipes = get_recipes_book(store)
        logger.debug(f"GET /api/recipes - retrieved: {recipes is not None}")
        return recipes

    @app.post("/api/recipes")
    @no_cache
    def write_recipes():
        body = _json_body()
        categories = body.get("categories")
        if not isinstance(categories, list):
            raise ApiError(400, "categories is required")
        save_recipes_book(store, categories, body.get("version"))
        return {"success": True}

    # === Orders ===

    @app.post("/api/order-list")
    @no_cache
    def write_order_list():
        items = _json_body().get("items")
        save_order_list(store, items if isinstance(items, list) else [])
        return {"success": True}

    @app.post("/api/order-history")
    @no_cache
    def write_order_history():
        return add_order_history(store, _json_body().get("item"))

    # === Parsing ===

    @app.post("/api/parse-ingredient")
    def parse_ingredient_route():
        ingredient = _json_body().get("ingredient")
        if not ingredient or not isinstance(ingredient, str):
            raise ApiError(400, "ingredient is required")
        result = parse_ingredient(ingredient, inference, config.prompts.ingredient)
        return jsonify(result.to_dict())

    @app.post("/api/parse-recipe")
    def parse_recipe_route():
        content = _json_body().get("content")
        if not content or not isinstance(content, str):
            raise ApiError(400, "content is required")
        if len(content) > MAX_RECIPE_TEXT:
            raise ApiError(400, f"Content too long (max {MAX_RECIPE_TEXT} characters)")
        try:
            parsed = parse_recipe_text(inference, content, config.prompts.recipe)
        except RecipeParseError as e:
            raise ApiError(500, str(e))
        return jsonify({"ingredients": parsed.ingredients, "instructions": parsed.instructions})

    @app.post("/api/parse-recipe-url")
    def parse_recipe_url_route():
        url = _json_body().get("url")
        if not url or not isinstance(url, str):
            raise ApiError(400, "URL is required")
        if not is_valid_url(url):
            raise ApiError(400, "Invalid URL format")

        try:
            recipe = parse_recipe_url(url, inference, config.prompts.recipe)
        except FetchError as e:
            raise ApiError(400, str(e))
        except InsufficientContentError as e:
            raise ApiError(400, str(e))
        except RecipeParseError as e:
            raise ApiError(500, str(e))
        return jsonify(recipe.to_dict())

    @app.post("/api/transcribe-audio")
    def transcribe_audio_route():
        audio_file = request.files.get("audio")
        if audio_file is None:
            raise ApiError(400, "Audio file is required")

        audio = audio_file.read()
        if not audio:
            raise ApiError(400, "Audio file is required")
        if len(audio) > MAX_AUDIO_BYTES:
            raise ApiError(400, "Audio file too large (max 10MB)")

        mime_type = audio_file.mimetype or "audio/webm"
        try:
            result = transcribe_recipe(inference, audio, mime_type, config.prompts.recipe)
        except TranscriptionError as e:
            logger.exception("Audio transcription failed")
            raise ApiError(500, str(e))
        return jsonify(result.to_dict())

    @app.post("/api/extract-text")
    def extract_text_route():
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            raise ApiError(400, "File is required")
        try:
            text = extract_text_from_file(upload.filename, upload.read())
        except UnsupportedFileError as e:
            raise ApiError(400, str(e))
        return jsonify({"text": text})

    return app


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logger.info("Kitchen Prep starting...")

    try:
        config = load_config()
    except FileNotFoundError:
        logger.error("config.yaml not found! Copy config.yaml.example to config.yaml")
        sys.exit(1)

    if config.server.pin_code == DEFAULT_PIN_CODE:
        logger.warning("WARNING: Default PIN in use - set PIN_CODE or server.pin_code")

    inference = create_inference(
        config.gemini.api_key, config.gemini.model, config.gemini.transcription_model
    )
    app = create_app(config, JsonFileStore(config.storage.path), inference)

    logger.info(f"Storage: {config.storage.path}")
    app.run(host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
