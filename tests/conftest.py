from typing import Any

import pytest

from cardherald.services.reply_sink import RecordingReplySink


class FakeClock:
    """Manually advanced monotonic clock for rate-limit tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingReplySink:
    return RecordingReplySink()


@pytest.fixture
def dark_magician() -> dict[str, Any]:
    """YGOPRODeck-style card record."""
    return {
        "id": 46986414,
        "name": "Dark Magician",
        "type": "Normal Monster",
        "humanReadableCardType": "Normal Monster",
        "desc": "The ultimate wizard in terms of attack and defense.",
        "race": "Spellcaster",
        "attribute": "DARK",
        "level": 7,
        "atk": 2500,
        "def": 2100,
        "archetype": "Dark Magician",
        "card_images": [
            {
                "id": 46986414,
                "image_url": "https://images.ygoprodeck.com/images/cards/46986414.jpg",
                "image_url_small": "https://images.ygoprodeck.com/images/cards_small/46986414.jpg",
                "image_url_cropped": "https://images.ygoprodeck.com/images/cards_cropped/46986414.jpg",
            }
        ],
    }


@pytest.fixture
def pipeline_envelope(dark_magician: dict[str, Any]) -> dict[str, Any]:
    """A two-branch pipeline run response with the card on the second branch."""
    return {
        "session_id": "abc",
        "outputs": [
            {
                "inputs": {"input_value": "dark magician"},
                "outputs": [
                    {"results": {"message": {"text": "Here is your card."}}},
                    {"results": {"data": [dark_magician]}},
                ],
            }
        ],
    }


@pytest.fixture
def pokemon_markdown() -> str:
    return "!Pikachu\n| Loại | Điện |\n| Chiều cao | 0.4 |\n---\n!Bulbasaur\n| Loại | Cỏ |"
