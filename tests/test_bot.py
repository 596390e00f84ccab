"""Tests for the Telegram bot: recipe formatting and message handlers."""
import json
from types import SimpleNamespace

import pytest
from telebot import types

import bot as bot_module
import parsing
from bot import URL_PATTERN, _escape_telegram_markdown, cache_recipe, create_bot, format_recipe_chat, recipe_cache
from config import Config, StorageConfig, TelegramConfig
from conftest import FakeInference
from extractor import ExtractedRecipe
from kitchen import ORDER_HISTORY_KEY, get_recipes_book

BOT_TOKEN = "123456:TEST-TOKEN"
USER_ID = 1001
CHAT_ID = 5005

AI_RECIPE = json.dumps({"ingredients": ["2 eggs", "Milk"], "instructions": "Whisk\nFry"})

SCHEMA_PAGE = (
    '<html><head><script type="application/ld+json">'
    '{"@type": "Recipe", "name": "Soup", "recipeIngredient": ["water"], "recipeInstructions": "Boil"}'
    "</script></head><body></body></html>"
)


def message_update(update_id: int, user_id: int = USER_ID, **fields) -> types.Update:
    message = {
        "message_id": update_id,
        "from": {"id": user_id, "is_bot": False, "first_name": "Cook"},
        "chat": {"id": CHAT_ID, "type": "private"},
        "date": 1700000000,
        **fields,
    }
    return types.Update.de_json({"update_id": update_id, "message": message})


def callback_update(update_id: int, data: str, user_id: int = USER_ID) -> types.Update:
    return types.Update.de_json({
        "update_id": update_id,
        "callback_query": {
            "id": f"cb{update_id}",
            "from": {"id": user_id, "is_bot": False, "first_name": "Cook"},
            "chat_instance": "ci",
            "data": data,
        },
    })


class Outbox:
    """Records what the bot would send instead of calling Telegram."""

    def __init__(self):
        self.calls: list[tuple[str, tuple, dict]] = []
        self.downloads = 0

    def record(self, name: str):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return SimpleNamespace(message_id=9000 + len(self.calls))
        return method

    def texts(self, name: str) -> list[str]:
        # edit_message_text takes the text first, the others take it second
        index = 0 if name == "edit_message_text" else 1
        return [args[index] for called, args, _ in self.calls if called == name]

    def kwargs(self, name: str) -> list[dict]:
        return [kwargs for called, _, kwargs in self.calls if called == name]


@pytest.fixture(autouse=True)
def empty_recipe_cache():
    recipe_cache.clear()
    yield
    recipe_cache.clear()


@pytest.fixture
def outbox():
    return Outbox()


def make_bot(store, outbox, inference=None, allowed_users=None, file_data=b""):
    config = Config(
        telegram=TelegramConfig(bot_token=BOT_TOKEN, allowed_users=allowed_users or []),
        storage=StorageConfig(path=store.path),
    )
    telegram_bot = create_bot(config, store, inference, threaded=False)
    for name in ("send_message", "reply_to", "delete_message", "edit_message_text", "answer_callback_query"):
        setattr(telegram_bot, name, outbox.record(name))

    def download_file(file_path):
        outbox.downloads += 1
        return file_data

    telegram_bot.get_file = lambda file_id: SimpleNamespace(file_path=f"documents/{file_id}")
    telegram_bot.download_file = download_file
    return telegram_bot


class TestFormatRecipeChat:

    def test_schema_recipe(self):
        recipe = ExtractedRecipe(
            name="Tuna Tartar",
            ingredients=["200g tuna", "1 shallot"],
            instructions="Dice the tuna\n\nMix with shallot",
        )
        assert format_recipe_chat(recipe) == "\n".join([
            "*Tuna Tartar*",
            "",
            "*Ingredients:*",
            "• 200g tuna",
            "• 1 shallot",
            "",
            "*Instructions:*",
            "1. Dice the tuna",
            "2. Mix with shallot",
            "",
            "_From the page's recipe data_",
        ])

    def test_ai_recipe_without_name(self):
        text = format_recipe_chat(ExtractedRecipe(ingredients=["salt"], instructions="Season", source="ai"))
        assert text.startswith("*Untitled recipe*")
        assert text.endswith("_Parsed by AI_")

    def test_markdown_escaped(self):
        text = format_recipe_chat(ExtractedRecipe(name="Mac_and_cheese *deluxe*"))
        assert text.startswith("*Mac\\_and\\_cheese \\*deluxe\\**")


class TestHelpers:

    def test_escape_empty(self):
        assert _escape_telegram_markdown("") == ""

    def test_url_pattern(self):
        match = URL_PATTERN.search("try this https://example.com/soup?x=1 tonight")
        assert match.group(0) == "https://example.com/soup?x=1"

    def test_cache_drops_oldest(self, monkeypatch):
        monkeypatch.setattr(bot_module, "MAX_CACHED_RECIPES", 2)
        for key in ("a", "b", "c"):
            cache_recipe(key, ExtractedRecipe(name=key))
        assert list(recipe_cache) == ["b", "c"]


class TestUrlHandler:

    def test_schema_recipe_sent_with_save_button(self, store, outbox, monkeypatch):
        fetched = []
        monkeypatch.setattr(parsing, "fetch_html", lambda url: fetched.append(url) or SCHEMA_PAGE)
        telegram_bot = make_bot(store, outbox)

        telegram_bot.process_new_updates([message_update(1, text="try https://example.com/soup tonight")])

        assert fetched == ["https://example.com/soup"]
        assert outbox.texts("reply_to") == ["Loading page..."]
        [text] = outbox.texts("send_message")
        assert text.startswith("*Soup*")
        button = outbox.kwargs("send_message")[0]["reply_markup"].keyboard[0][0]
        assert button.callback_data == f"save:{CHAT_ID}_1"
        assert recipe_cache[f"{CHAT_ID}_1"].name == "Soup"

    def test_too_little_content_edits_status(self, store, outbox, monkeypatch):
        monkeypatch.setattr(parsing, "fetch_html", lambda url: "<p>tiny</p>")
        telegram_bot = make_bot(store, outbox)

        telegram_bot.process_new_updates([message_update(2, text="https://example.com/empty")])

        [text] = outbox.texts("edit_message_text")
        assert text.startswith("Error: ")
        assert outbox.texts("send_message") == []
        assert not recipe_cache


class TestSaveCallback:

    def test_saves_and_forgets_recipe(self, store, outbox):
        recipe_cache["5005_7"] = ExtractedRecipe(name="Soup", ingredients=["water"], instructions="Boil")
        telegram_bot = make_bot(store, outbox)

        telegram_bot.process_new_updates([callback_update(3, "save:5005_7")])

        assert outbox.texts("answer_callback_query") == ["Saved: Soup"]
        assert "5005_7" not in recipe_cache
        book = get_recipes_book(store)
        saved = [r for c in book["categories"] for r in c["recipes"] if r["name"] == "Soup"]
        assert len(saved) == 1
        assert saved[0]["ingredients"] == ["water"]

    def test_unknown_recipe(self, store, outbox):
        telegram_bot = make_bot(store, outbox)
        telegram_bot.process_new_updates([callback_update(4, "save:missing")])
        assert outbox.texts("answer_callback_query") == ["Recipe no longer available"]
        assert get_recipes_book(store) is None


class TestOrderCommand:

    def test_add_then_duplicate(self, store, outbox):
        telegram_bot = make_bot(store, outbox)
        telegram_bot.process_new_updates([
            message_update(5, text="/order Figs"),
            message_update(6, text="/order figs"),
        ])
        assert outbox.texts("reply_to") == [
            "Added to the order history: Figs",
            "Already in the order history: figs",
        ]
        assert store.get(ORDER_HISTORY_KEY) == ["Figs"]

    def test_usage_without_item(self, store, outbox):
        telegram_bot = make_bot(store, outbox)
        telegram_bot.process_new_updates([message_update(7, text="/order")])
        assert outbox.texts("reply_to") == ["Usage: /order <item>"]


class TestDocumentHandler:

    def test_unsupported_extension_not_downloaded(self, store, outbox):
        telegram_bot = make_bot(store, outbox)
        document = {"file_id": "f1", "file_unique_id": "u1", "file_name": "photo.jpg"}

        telegram_bot.process_new_updates([message_update(8, document=document)])

        assert outbox.texts("reply_to") == ["Please send a .pdf, .docx or .txt file."]
        assert outbox.downloads == 0

    def test_text_file_parsed(self, store, outbox):
        inference = FakeInference([AI_RECIPE])
        telegram_bot = make_bot(store, outbox, inference, file_data=b"Pancakes\n2 eggs, milk")
        document = {"file_id": "f2", "file_unique_id": "u2", "file_name": "pancakes.txt"}

        telegram_bot.process_new_updates([message_update(9, document=document)])

        assert "Pancakes\n2 eggs, milk" in inference.calls[0][1]["content"]
        [text] = outbox.texts("send_message")
        assert text.startswith("*pancakes*")
        assert "• 2 eggs" in text
        assert recipe_cache[f"{CHAT_ID}_9"].name == "pancakes"


class TestIngredientText:

    def test_local_normalization(self, store, outbox):
        telegram_bot = make_bot(store, outbox)
        telegram_bot.process_new_updates([message_update(10, text="200g cherry tomatoes")])
        assert outbox.texts("reply_to") == ["cherry tomatoes"]


class TestWhitelist:

    def test_stranger_ignored(self, store, outbox):
        telegram_bot = make_bot(store, outbox, allowed_users=[USER_ID])
        telegram_bot.process_new_updates([
            message_update(11, user_id=42, text="/order Figs"),
            message_update(12, user_id=42, text="2 cloves garlic"),
        ])
        assert outbox.calls == []
        assert store.get(ORDER_HISTORY_KEY) is None

    def test_stranger_told_on_start(self, store, outbox):
        telegram_bot = make_bot(store, outbox, allowed_users=[USER_ID])
        telegram_bot.process_new_updates([message_update(13, user_id=42, text="/start")])
        assert outbox.texts("reply_to") == ["You are not allowed to use this bot."]

    def test_listed_user_served(self, store, outbox):
        telegram_bot = make_bot(store, outbox, allowed_users=[USER_ID])
        telegram_bot.process_new_updates([message_update(14, text="/order Figs")])
        assert outbox.texts("reply_to") == ["Added to the order history: Figs"]
