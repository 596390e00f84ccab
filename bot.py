#!/usr/bin/env python3
"""Kitchen Prep Telegram Bot."""

import logging
import re
import sys
from collections import OrderedDict

import telebot
from telebot import types

from config import Config, load_config
from extractor import SOURCE_AI, ExtractedRecipe
from file_parsers import SUPPORTED_EXTENSIONS, UnsupportedFileError, extract_text_from_file
from inference import InferenceClient, create_inference
from kitchen import add_order_history, import_recipe
from parsing import (
    RecipeParseError,
    TranscriptionError,
    parse_ingredient,
    parse_recipe_text,
    parse_recipe_url,
    transcribe_recipe,
)
from storage import JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s]+")

# Recipes waiting for the "save" button, oldest dropped first
MAX_CACHED_RECIPES = 100
recipe_cache: OrderedDict = OrderedDict()


def cache_recipe(recipe_id: str, recipe: ExtractedRecipe):
    recipe_cache[recipe_id] = recipe
    while len(recipe_cache) > MAX_CACHED_RECIPES:
        recipe_cache.popitem(last=False)


def _escape_telegram_markdown(text: str) -> str:
    r"""Escapes special characters for Telegram Markdown V1: \ * _ ` ["""
    if not text:
        return ""
    for char in ("\\", "*", "_", "`", "["):
        text = text.replace(char, f"\\{char}")
    return text


def format_recipe_chat(recipe: ExtractedRecipe) -> str:
    """Formats a recipe for Telegram chat with proper Markdown escaping."""
    esc = _escape_telegram_markdown

    lines = [f"*{esc(recipe.name or 'Untitled recipe')}*", ""]

    lines.append("*Ingredients:*")
    for ingredient in recipe.ingredients:
        lines.append(f"• {esc(ingredient)}")

    lines.append("")
    lines.append("*Instructions:*")
    steps = [s for s in recipe.instructions.split("\n") if s.strip()]
    for i, step in enumerate(steps, 1):
        lines.append(f"{i}. {esc(step.strip())}")

    lines.append("")
    lines.append("_Parsed by AI_" if recipe.source == SOURCE_AI else "_From the page's recipe data_")
    return "\n".join(lines)


def create_bot(
    config: Config,
    store: KeyValueStore,
    inference: InferenceClient | None,
    threaded: bool = True,
) -> telebot.TeleBot:
    """Creates and configures the bot."""

    bot = telebot.TeleBot(config.telegram.bot_token, threaded=threaded)

    def is_user_allowed(user_id: int) -> bool:
        if not config.telegram.allowed_users:
            return True
        return user_id in config.telegram.allowed_users

    def create_recipe_buttons(recipe_id: str) -> types.InlineKeyboardMarkup:
        markup = types.InlineKeyboardMarkup(row_width=1)
        markup.add(types.InlineKeyboardButton("Save to recipe book", callback_data=f"save:{recipe_id}"))
        return markup

    def send_recipe(message: types.Message, recipe: ExtractedRecipe):
        """Sends a formatted recipe with a save button."""
        recipe_id = f"{message.chat.id}_{message.message_id}"
        cache_recipe(recipe_id, recipe)

        bot.send_message(
            message.chat.id,
            format_recipe_chat(recipe),
            parse_mode="Markdown",
            reply_markup=create_recipe_buttons(recipe_id),
            disable_web_page_preview=True,
        )

    # === Handlers ===

    @bot.message_handler(commands=["start", "help"])
    def handle_start(message: types.Message):
        logger.debug(f"Start/Help from user {message.from_user.id}")
        if not is_user_allowed(message.from_user.id):
            bot.reply_to(message, "You are not allowed to use this bot.")
            return

        help_text = """*Kitchen Prep Bot*

Send me a recipe and I'll add it to the recipe book.

*Supported:*
• Recipe links
• Voice messages and audio
• .pdf, .docx and .txt files
• An ingredient line, e.g. "2 cloves garlic, minced"

*Commands:*
/start - Show this help
/id - Show your user ID
/order <item> - Add an item to the order history
"""
        bot.send_message(message.chat.id, help_text, parse_mode="Markdown")

    @bot.message_handler(commands=["id"])
    def handle_id(message: types.Message):
        bot.reply_to(message, f"Your user ID: `{message.from_user.id}`", parse_mode="Markdown")

    @bot.message_handler(commands=["order"])
    def handle_order(message: types.Message):
        if not is_user_allowed(message.from_user.id):
            return

        item = message.text.partition(" ")[2]
        result = add_order_history(store, item)
        if not result["success"]:
            bot.reply_to(message, "Usage: /order <item>")
        elif result["duplicate"]:
            bot.reply_to(message, f"Already in the order history: {item.strip()}")
        else:
            bot.reply_to(message, f"Added to the order history: {item.strip()}")

    @bot.message_handler(func=lambda m: bool(m.text and URL_PATTERN.search(m.text)))
    def handle_url(message: types.Message):
        logger.info(f"URL received from user {message.from_user.id}")
        if not is_user_allowed(message.from_user.id):
            return

        url = URL_PATTERN.search(message.text).group(0)
        status = bot.reply_to(message, "Loading page...")

        try:
            recipe = parse_recipe_url(url, inference, config.prompts.recipe)
            logger.info(f"Recipe extracted ({recipe.source}): {recipe.name}")
            bot.delete_message(message.chat.id, status.message_id)
            send_recipe(message, recipe)

        except ValueError as e:
            logger.exception("Error processing URL")
            bot.edit_message_text(f"Error: {e}", message.chat.id, status.message_id)

    @bot.message_handler(content_types=["voice", "audio"])
    def handle_audio(message: types.Message):
        logger.info(f"Audio received from user {message.from_user.id}")
        if not is_user_allowed(message.from_user.id):
            return

        media = message.voice or message.audio
        mime_type = media.mime_type or "audio/ogg"
        status = bot.reply_to(message, "Transcribing...")

        try:
            file_info = bot.get_file(media.file_id)
            audio = bot.download_file(file_info.file_path)
            result = transcribe_recipe(inference, audio, mime_type, config.prompts.recipe)

            bot.delete_message(message.chat.id, status.message_id)
            bot.reply_to(message, result.transcription)
            if result.ingredients or result.instructions:
                recipe = ExtractedRecipe(
                    ingredients=result.ingredients,
                    instructions=result.instructions,
                    source=SOURCE_AI,
                )
                send_recipe(message, recipe)

        except TranscriptionError as e:
            logger.exception("Error processing audio")
            bot.edit_message_text(f"Error: {e}", message.chat.id, status.message_id)

    @bot.message_handler(content_types=["document"])
    def handle_document(message: types.Message):
        logger.info(f"Document received from user {message.from_user.id}")
        if not is_user_allowed(message.from_user.id):
            return

        doc = message.document
        if not (doc.file_name or "").lower().endswith(SUPPORTED_EXTENSIONS):
            bot.reply_to(message, "Please send a .pdf, .docx or .txt file.")
            return

        status = bot.reply_to(message, "Reading file...")

        try:
            file_info = bot.get_file(doc.file_id)
            data = bot.download_file(file_info.file_path)
            text = extract_text_from_file(doc.file_name, data)

            bot.edit_message_text("Parsing recipe...", message.chat.id, status.message_id)
            parsed = parse_recipe_text(inference, text, config.prompts.recipe)

            bot.delete_message(message.chat.id, status.message_id)
            name = doc.file_name.rsplit(".", 1)[0]
            send_recipe(message, ExtractedRecipe(
                name=name,
                ingredients=parsed.ingredients,
                instructions=parsed.instructions,
                source=SOURCE_AI,
            ))

        except (UnsupportedFileError, RecipeParseError) as e:
            logger.exception("Error processing document")
            bot.edit_message_text(f"Error: {e}", message.chat.id, status.message_id)

    @bot.message_handler(content_types=["text"])
    def handle_ingredient(message: types.Message):
        if not is_user_allowed(message.from_user.id):
            return

        result = parse_ingredient(message.text, inference, config.prompts.ingredient)
        suffix = " (AI)" if result.used_ai else ""
        bot.reply_to(message, f"{result.item}{suffix}")

    @bot.callback_query_handler(func=lambda call: call.data.startswith("save:"))
    def handle_save_callback(call: types.CallbackQuery):
        logger.debug(f"Save button clicked: {call.data}")
        recipe_id = call.data[5:]
        recipe = recipe_cache.pop(recipe_id, None)

        if not recipe:
            bot.answer_callback_query(call.id, "Recipe no longer available")
            return

        saved = import_recipe(store, recipe.name, recipe.ingredients, recipe.instructions)
        bot.answer_callback_query(call.id, f"Saved: {saved['name']}")
        logger.info(f"Recipe saved: {saved['name']}")

    return bot


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logger.info("Kitchen Prep Bot starting...")

    try:
        config = load_config()
    except FileNotFoundError:
        logger.error("config.yaml not found! Copy config.yaml.example to config.yaml")
        sys.exit(1)

    if not config.telegram.bot_token:
        logger.error("No bot token configured!")
        sys.exit(1)

    if config.telegram.allowed_users:
        logger.info(f"Allowed users: {config.telegram.allowed_users}")
    else:
        logger.warning("WARNING: No user whitelist - anyone can use the bot!")

    inference = create_inference(
        config.gemini.api_key, config.gemini.model, config.gemini.transcription_model
    )
    bot = create_bot(config, JsonFileStore(config.storage.path), inference)

    logger.info("Bot started! Waiting for messages...")
    bot.infinity_polling()


if __name__ == "__main__":
    main()
