"""Extracts recipes from web pages: JSON-LD schema first, plain text as fallback."""

import ipaddress
import json
import logging
import re
import socket
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup
from bs4.exceptions import ParserRejectedMarkup
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

# Timeouts (in seconds)
TIMEOUT_WEBPAGE = 15

# Text length limits
MAX_PLAIN_TEXT = 30000
MIN_CONTENT_LENGTH = 100

SOURCE_SCHEMA = "schema"
SOURCE_PLAIN_TEXT = "plain-text-fallback"
SOURCE_AI = "ai"

# HTTP session for connection reuse
_http_session: requests.Session | None = None


class FetchError(ValueError):
    """Raised when a web page cannot be fetched."""
    pass


def _get_http_session() -> requests.Session:
    """Returns a reusable HTTP session."""
    global _http_session
    if _http_session is None:
        _http_session = requests.Session()
        _http_session.headers.update({
            "User-Agent": "Mozilla/5.0 (compatible; RecipeScraper/1.0)",
            "Accept": "text/html",
        })
    return _http_session


class PinnedHostAdapter(HTTPAdapter):
    """Connects to a pinned IP but sends SNI and checks the certificate for the hostname."""

    def __init__(self, hostname: str, **kwargs):
        self.hostname = hostname
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs["server_hostname"] = self.hostname
        kwargs["assert_hostname"] = self.hostname
        super().init_poolmanager(*args, **kwargs)


def _get_pinned_session(hostname: str) -> requests.Session:
    """Returns a one-off HTTPS session that verifies TLS against hostname."""
    session = requests.Session()
    session.headers.update(_get_http_session().headers)
    session.mount("https://", PinnedHostAdapter(hostname))
    return session


def _validate_and_resolve_url(url: str) -> tuple[bool, str | None, str | None]:
    """
    Validates URL against SSRF attacks and resolves DNS.

    Returns:
        Tuple of (is_valid, resolved_ip, hostname)
        - is_valid: True if URL is safe
        - resolved_ip: Resolved IP address (for DNS rebinding protection)
        - hostname: Original hostname for Host header
    """
    try:
        parsed = urlparse(url)
    except ValueError as e:
        logger.warning(f"URL could not be parsed: {e}")
        return False, None, None

    # Only allow HTTP(S)
    if parsed.scheme not in ("http", "https"):
        logger.warning(f"Invalid URL scheme: {parsed.scheme}")
        return False, None, None

    if not parsed.hostname:
        logger.warning("URL without hostname")
        return False, None, None

    hostname = parsed.hostname
    if hostname.lower() in ("localhost", "127.0.0.1", "0.0.0.0", "::1"):
        logger.warning(f"Blocked hostname: {hostname}")
        return False, None, None

    try:
        resolved_ip = socket.gethostbyname(hostname)
    except socket.gaierror:
        logger.warning(f"DNS resolution failed for: {hostname}")
        return False, None, None

    ip_obj = ipaddress.ip_address(resolved_ip)
    # Link-local covers 169.254.x.x cloud metadata
    if ip_obj.is_private or ip_obj.is_loopback or ip_obj.is_reserved or ip_obj.is_link_local:
        logger.warning(f"Private/reserved IP blocked: {resolved_ip}")
        return False, None, None

    return True, resolved_ip, hostname


def is_valid_url(url: str) -> bool:
    """Checks that a URL is a well-formed http(s) URL (no DNS lookup)."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def fetch_html(url: str, timeout: int = TIMEOUT_WEBPAGE) -> str:
    """
    Fetches a web page with DNS rebinding protection.

    Resolves DNS once and requests the IP directly, sending the original
    hostname in the Host header. HTTPS requests still use the hostname for
    SNI and certificate checks.

    Raises:
        FetchError: For unsafe URLs and HTTP errors
    """
    is_valid, resolved_ip, hostname = _validate_and_resolve_url(url)
    if not is_valid or not resolved_ip or not hostname:
        raise FetchError(f"Unsafe URL blocked: {url}")

    parsed = urlparse(url)
    host = resolved_ip if ":" not in resolved_ip else f"[{resolved_ip}]"
    ip_url = f"{parsed.scheme}://{host}"
    if parsed.port:
        ip_url += f":{parsed.port}"
    ip_url += parsed.path or "/"
    if parsed.query:
        ip_url += f"?{parsed.query}"

    headers = {"Host": hostname if not parsed.port else f"{hostname}:{parsed.port}"}

    pinned = parsed.scheme == "https"
    session = _get_pinned_session(hostname) if pinned else _get_http_session()

    try:
        response = session.get(ip_url, timeout=timeout, headers=headers, verify=True)
        response.raise_for_status()
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else "?"
        reason = e.response.reason if e.response is not None else ""
        raise FetchError(f"Failed to fetch URL: {status} {reason}".strip()) from e
    except requests.RequestException as e:
        raise FetchError(f"Could not fetch webpage: {e}") from e
    finally:
        if pinned:
            session.close()

    logger.info(f"Webpage fetched: {len(response.text)} characters")
    return response.text


# =============================================================================
# DATA MODEL
# =============================================================================

@dataclass
class RecipeSchema:
    """A schema.org Recipe object found in a JSON-LD block."""
    name: str | None = None
    recipe_ingredient: list[Any] | None = None
    recipe_instructions: Any = None

    @classmethod
    def from_json_ld(cls, data: dict) -> "RecipeSchema":
        name = data.get("name")
        ingredients = data.get("recipeIngredient")
        if isinstance(ingredients, str):
            ingredients = [ingredients]
        elif not isinstance(ingredients, list):
            ingredients = None
        return cls(
            name=name if isinstance(name, str) else None,
            recipe_ingredient=ingredients,
            recipe_instructions=data.get("recipeInstructions"),
        )


@dataclass
class ExtractedRecipe:
    """Normalized recipe plus the path that produced it."""
    name: str = ""
    ingredients: list[str] = field(default_factory=list)
    instructions: str = ""
    source: str = SOURCE_SCHEMA
    plain_text: str | None = None  # Set on the plain-text fallback path

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "ingredients": self.ingredients,
            "instructions": self.instructions,
            "source": self.source,
        }


# =============================================================================
# JSON-LD SCHEMA
# =============================================================================

def _is_ld_json(script_type: str | None) -> bool:
    return bool(script_type) and script_type.strip().lower() == "application/ld+json"


def _is_recipe(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    schema_type = item.get("@type")
    if isinstance(schema_type, list):
        return "Recipe" in schema_type
    return schema_type == "Recipe"


def _candidates(data: Any) -> list:
    if isinstance(data, dict) and isinstance(data.get("@graph"), list):
        return data["@graph"]
    if isinstance(data, list):
        return data
    return [data]


def extract_recipe_schema(html: str) -> RecipeSchema | None:
    """
    Finds the first schema.org Recipe in the page's JSON-LD blocks.

    Blocks are scanned in document order and each block's candidates in
    order; the first Recipe wins. Blocks with invalid JSON are skipped, and
    markup the parser rejects counts as having no schema.
    """
    try:
        soup = BeautifulSoup(html, "html.parser")
    except ParserRejectedMarkup as e:
        logger.warning(f"HTML parser rejected the page: {e}")
        return None

    for script in soup.find_all("script", type=_is_ld_json):
        try:
            data = json.loads((script.string or "").strip())
        except (ValueError, RecursionError):
            logger.debug("Skipping invalid JSON-LD block")
            continue

        for item in _candidates(data):
            if _is_recipe(item):
                logger.info(f"Schema recipe found: {item.get('name', '')}")
                return RecipeSchema.from_json_ld(item)

    return None


def parse_instructions(instructions: Any) -> str:
    """Flattens recipeInstructions (string, strings or HowToStep objects) to lines."""
    if isinstance(instructions, str):
        return instructions

    if isinstance(instructions, list):
        steps = []
        for step in instructions:
            if isinstance(step, str):
                steps.append(step)
            elif isinstance(step, dict):
                # HowToStep or HowToSection
                text = step.get("text") or step.get("name") or ""
                steps.append(text if isinstance(text, str) else "")
        return "\n".join(s for s in steps if s)

    return ""


# =============================================================================
# PLAIN TEXT FALLBACK
# =============================================================================

_NON_CONTENT_BLOCKS = [
    re.compile(rf"<{tag}\b.*?</{tag}\s*>", re.IGNORECASE | re.DOTALL)
    for tag in ("script", "style", "nav", "footer", "header", "aside")
]
_BLOCK_TAG = re.compile(r"<(?:p|div|br|li|h[1-6])\b[^>]*>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[^>]+>")
# Element tags only; a bare "<" in text is kept
_ELEMENT_TAG = re.compile(r"</?[A-Za-z][^>]*>")

# Decoded in this order
_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
)


def _decode_entities(text: str) -> str:
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text


def _clean_lines(text: str) -> str:
    lines = [line.strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line)


def html_to_plain_text(html: str, max_length: int = MAX_PLAIN_TEXT) -> str:
    """Reduces HTML to clean text lines for AI parsing."""
    text = html
    for pattern in _NON_CONTENT_BLOCKS:
        text = pattern.sub("", text)

    text = _BLOCK_TAG.sub("\n", text)
    text = _ANY_TAG.sub("", text)
    text = _decode_entities(text)
    text = _clean_lines(text)

    return text[:max_length]


def _strip_markup(text: str) -> str:
    if not _ELEMENT_TAG.search(text):
        return _decode_entities(text)
    text = _BLOCK_TAG.sub("\n", text)
    text = _ELEMENT_TAG.sub("", text)
    return _clean_lines(_decode_entities(text))


# =============================================================================
# COMBINED
# =============================================================================

def _recipe_from_schema(schema: RecipeSchema) -> ExtractedRecipe:
    ingredients = [str(i).strip() for i in schema.recipe_ingredient or [] if i is not None]
    return ExtractedRecipe(
        name=schema.name or "",
        ingredients=[i for i in ingredients if i],
        instructions=_strip_markup(parse_instructions(schema.recipe_instructions)),
        source=SOURCE_SCHEMA,
    )


def extract_recipe_from_html(html: str) -> ExtractedRecipe | None:
    """Returns the schema recipe of a page, or None if it has none."""
    schema = extract_recipe_schema(html)
    if schema is None:
        return None
    return _recipe_from_schema(schema)


def extract(html: str) -> ExtractedRecipe:
    """
    Extracts a recipe from HTML.
    Tries JSON-LD Schema first; otherwise returns an empty recipe carrying
    the page's plain text for AI parsing.
    """
    recipe = extract_recipe_from_html(html)
    if recipe:
        logger.info("Recipe extracted from schema (high accuracy)")
        return recipe

    logger.info("No schema found, falling back to plain text")
    return ExtractedRecipe(source=SOURCE_PLAIN_TEXT, plain_text=html_to_plain_text(html))
