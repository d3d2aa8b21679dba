"""Command Parser.

Extracts ``[COMMAND_NAME key: value, key2: value2]`` tokens from assistant text
and cleans the remaining text for display.
"""

import logging
import re

from ...domain.value_objects import Command

logger = logging.getLogger(__name__)

COMMAND_PATTERN = re.compile(r"\[([A-Z_]+)(?:\s+([^\]]+))?\]")
PARAM_PATTERN = re.compile(r"(\w+):\s*([^,]+?)(?:,|$)")

# "Thinking aloud" fragments that leak from generation
FILLER_PHRASES = (
    r"let me check",
    r"let me see",
    r"one moment(?: please)?",
    r"just a moment",
    r"give me a (?:moment|second)",
    r"сейчас проверю",
    r"сейчас посмотрю",
    r"дайте (?:мне )?проверить",
    r"одну (?:минуту|секунду)(?:, пожалуйста)?",
    r"минуточку",
    r"секундочку",
)
FILLER_PATTERN = re.compile(
    r"(?<!\w)(?:" + "|".join(FILLER_PHRASES) + r")(?!\w)[\s.,!…]*",
    re.IGNORECASE,
)

TERMINAL_PUNCTUATION = ".!?"


def parse_params(params_text: str | None) -> dict[str, str]:
    """Parse ``key: value, key2: value2`` into a dict of trimmed strings."""
    if not params_text:
        return {}
    return {key: value.strip() for key, value in PARAM_PATTERN.findall(params_text)}


def parse_commands(text: str) -> list[Command]:
    """Extract commands in left-to-right order."""
    commands = []
    for match in COMMAND_PATTERN.finditer(text):
        name, params_text = match.group(1), match.group(2)
        command = Command(name=name, params=parse_params(params_text))
        logger.debug(f"Found command: {name}", extra={"params": command.params})
        commands.append(command)
    return commands


def remove_commands(text: str) -> str:
    """Remove command tokens, leaving the surrounding text as is (outer whitespace trimmed)."""
    return COMMAND_PATTERN.sub("", text).strip()


def _replace_pipes(text: str) -> str:
    text = re.sub(r"\s*\|+\s*$", "", text, flags=re.MULTILINE)
    text = re.sub(r"([.!?])\s*\|+\s*", r"\1 ", text)
    return re.sub(r"\s*\|+\s*", ". ", text)


def clean_display_text(text: str) -> str:
    """
    Normalize assistant text for the client.

    Removes filler phrases, turns stray ``|`` separators into sentence breaks,
    collapses spaces, drops spaces before punctuation and de-duplicates
    punctuation runs.
    """
    text = FILLER_PATTERN.sub("", text)
    text = _replace_pipes(text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" +([.,!?;:])", r"\1", text)
    text = re.sub(r"([.,!?;:])\1+", r"\1", text)

    lines = [line.strip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"^[\s.,!?;:]+", "", text)
    return text.strip()
