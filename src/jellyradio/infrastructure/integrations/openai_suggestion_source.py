"""Suggestion source backed by an OpenAI-compatible chat completions API.

Hey future me - LLMs don't reliably return clean JSON, even when asked nicely.
parse_suggestions() is deliberately forgiving:

1. Parse the whole reply as a JSON array
2. Else pull the first [...] block out of the prose/markdown fence and parse that
3. Else give up and return [] (the pipeline treats that as "no suggestions", not an error)

Items without a non-empty title AND artist are dropped, the list is cut to count.
Transport/API failures are different: those raise ExternalServiceError because
we couldn't even get a reply.
"""

import json
import logging
import re
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from jellyradio.config.settings import SuggestionSettings
from jellyradio.domain.entities import SongSuggestion
from jellyradio.domain.exceptions import ConfigurationError, ExternalServiceError
from jellyradio.domain.ports import ISuggestionSource

logger = logging.getLogger(__name__)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")

SYSTEM_PROMPT = (
    "You are a music curator. You only answer with a JSON array of songs, "
    "no markdown and no commentary."
)

_FORMAT_INSTRUCTIONS = """Respond with a JSON array of objects, each containing:
- title: The song title
- artist: The artist name
- album: The album name (if known)
- reason: A brief explanation of why this song fits

Example format:
[
  {{"title": "Song Name", "artist": "Artist Name", "album": "Album Name", "reason": "Similar mood"}}
]

Only return the JSON array, no other text."""


def build_prompt(seed_descriptor: str, mode: str, count: int) -> str:
    """Build the user prompt for a seed.

    radio: a station starting from the seed, mixing the seed artist with related artists.
    similar: songs that sound like the seed, avoiding the seed artist itself.
    """
    if mode == "similar":
        intro = (
            f"Suggest {count} songs that are similar to: {seed_descriptor}\n\n"
            "Match genre, mood, tempo and era. Prefer other artists over the seed artist "
            "and do not repeat a song."
        )
    else:
        intro = (
            f"Create a radio station playlist of {count} songs starting from: "
            f"{seed_descriptor}\n\n"
            "Mix a few songs by the seed artist with songs by related artists, like a "
            "good radio station would. Vary artists and do not repeat a song."
        )
    return f"{intro}\n\n{_FORMAT_INSTRUCTIONS.format()}"


def _load_array(text: str) -> list[Any] | None:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, list) else None


def parse_suggestions(text: str | None, count: int) -> list[SongSuggestion]:
    """Parse a model reply into at most count suggestions. Never raises."""
    if not text:
        return []

    items = _load_array(text.strip())
    if items is None:
        match = _JSON_ARRAY.search(text)
        if match:
            items = _load_array(match.group(0))
    if items is None:
        logger.warning(f"Could not parse suggestions from model reply: {text[:200]!r}")
        return []

    suggestions = [s for s in (SongSuggestion.from_dict(item) for item in items) if s]
    if len(suggestions) < len(items):
        logger.debug(f"Dropped {len(items) - len(suggestions)} invalid suggestion items")
    return suggestions[: max(count, 0)]


class OpenAISuggestionSource(ISuggestionSource):
    """Generates song suggestions with a chat completion call."""

    def __init__(
        self, settings: SuggestionSettings, client: AsyncOpenAI | None = None
    ) -> None:
        """
        Initialize the suggestion source.

        Args:
            settings: Suggestion API settings
            client: Pre-built client (tests inject a mock). Built lazily from
                settings otherwise.
        """
        self.settings = settings
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if self.settings.api_key is None:
                raise ConfigurationError(
                    "Suggestion API key not configured (SUGGESTIONS__API_KEY)"
                )
            self._client = AsyncOpenAI(
                api_key=self.settings.api_key.get_secret_value(),
                base_url=self.settings.base_url,
            )
        return self._client

    async def generate(
        self, seed_descriptor: str, mode: str, count: int
    ) -> list[SongSuggestion]:
        client = self._get_client()
        prompt = build_prompt(seed_descriptor, mode, count)

        try:
            response = await client.chat.completions.create(
                model=self.settings.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature,
            )
        except OpenAIError as e:
            raise ExternalServiceError(f"Suggestion API request failed: {e}") from e

        if not response.choices:
            logger.warning("Suggestion API returned no choices")
            return []

        text = response.choices[0].message.content
        suggestions = parse_suggestions(text, count)
        logger.info(
            f"Suggestion API returned {len(suggestions)}/{count} usable suggestions "
            f"for '{seed_descriptor}' ({mode})"
        )
        return suggestions
