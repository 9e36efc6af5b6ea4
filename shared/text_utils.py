"""
Text helpers: sentence splitting and language tags.
"""

import re

from shared.enums import LANGUAGE_TAGS, StoryLanguage

# A terminator (., !, ? or the Devanagari danda) plus any closing quotes or
# brackets ends a sentence when followed by the end of the text, or by
# whitespace and a character that does not continue the sentence
# (a lowercase letter or an opening quote).
_SENTENCE_BOUNDARY = re.compile(r"[.!?।॥]+[\"'”’)\]]*(?=\s+[^\sa-z\"“]|\s*$)")


def split_story_into_sentences(story_text: str) -> list[str]:
    """
    Split story prose into display sentences.

    Text after the last terminator is kept as a final sentence, so no prose is lost.
    Whitespace is trimmed and empty fragments are dropped.
    """
    if not story_text or not story_text.strip():
        return []

    sentences: list[str] = []
    start = 0
    for match in _SENTENCE_BOUNDARY.finditer(story_text):
        sentences.append(story_text[start : match.end()])
        start = match.end()
    sentences.append(story_text[start:])
    return [sentence.strip() for sentence in sentences if sentence.strip()]


def language_tag(language: StoryLanguage | str) -> str:
    """Map a story language to the BCP-47 tag used for speech synthesis."""
    try:
        return LANGUAGE_TAGS[StoryLanguage(language)]
    except ValueError:
        # Already a tag such as "en-GB"
        return str(language)


def preview(text: str, length: int = 30) -> str:
    """Shorten text for status messages."""
    text = " ".join(text.split())
    if len(text) <= length:
        return text
    return f"{text[:length]}..."
