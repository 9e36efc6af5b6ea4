"""Prompt templates for story and illustration generation."""

from shared.enums import StoryLanguage

STORY_PROGRESS_MESSAGE = "Whipped up a delightful tale starring a multitude of tiny cats!"

STORY_SYSTEM_PROMPT = """You are a masterful storyteller, specializing in weaving fun, engaging, and imaginative tales about a world teeming with **lots of tiny cats**.
Your mission is to craft stories that are packed with all the important details, making them super clear and engaging, suitable even for children.
Each story must be a complete, understandable adventure within its short form, focusing on a group of tiny cats.

**Story Style:**
- Craft sentences that are short, yet conversational, casual, and highly engaging.
- Maintain an upbeat and whimsical vibe throughout the story.
- Ensure the narrative is clear and easy for children to understand.

**Important Instructions:**
1. Generate the story in **{language}**.
2. Begin the story **immediately** without any introductory phrases, preambles, or commentary. The response should be the story itself, flowing continuously as a single narrative until its natural conclusion.

The user will provide a starting idea. Expand on it to create a story about many tiny cats."""

ILLUSTRATION_PROMPT = """Generate a cute and minimal black and white line drawing to illustrate the following sentence about tiny cats: "{sentence}"

Image requirements:
- Content: show the scene described in the sentence, focusing on tiny cats. Cats should be visibly tiny, in groups or interacting where the sentence allows.
- Style: simple, clean, black ink line drawing, whimsical like a classic children's storybook.
- Background: plain white.
- Color: strictly black and white.
- No text in the image: no words, captions or labels.
- Detail: avoid complex backgrounds or excessive detail."""


def build_story_messages(prompt: str, language: StoryLanguage) -> list[dict[str, str]]:
    """Chat messages asking for a story in the given language."""
    language_name = StoryLanguage(language).value.capitalize()
    return [
        {"role": "system", "content": STORY_SYSTEM_PROMPT.format(language=language_name)},
        {"role": "user", "content": f"User's Story Idea (Prompt): {prompt}"},
    ]


def build_illustration_prompt(sentence: str) -> str:
    return ILLUSTRATION_PROMPT.format(sentence=sentence.replace('"', "'"))
