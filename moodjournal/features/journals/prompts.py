"""Writing prompt bank for basic journaling suggestions.

Prompts are deterministic for a given (mood, topic, date) so repeated calls
on the same day read consistently. An AI-backed generator can be plugged in
behind PromptGenerator without touching quota handling.
"""
import hashlib
from typing import List, Optional, Protocol

BASIC_SUGGESTION_COUNT = 3

MOOD_PROMPTS = {
    "happy": [
        "What made you smile today, and who was there with you?",
        "Describe a small moment today that you would like to remember a year from now.",
        "Which of your own choices helped create today's good mood?",
        "Who would you like to share today's good news with, and why them?",
    ],
    "sad": [
        "What is weighing on you right now? Write it down without judging it.",
        "What would you say to a close friend who felt the way you feel today?",
        "Name one thing, however small, that brought a little comfort today.",
        "What do you need most right now: rest, company, or space?",
    ],
    "anxious": [
        "List what is worrying you, then mark which items are within your control.",
        "Describe your surroundings using each of your five senses.",
        "What is the smallest next step you could take on the thing that worries you most?",
        "When did you last get through a similar worry, and what helped then?",
    ],
    "angry": [
        "What triggered your anger today, and what boundary felt crossed?",
        "If your anger could speak calmly, what would it ask for?",
        "What would resolving this situation look like for you?",
        "Write the message you want to send, then write the one you would be proud of sending.",
    ],
    "calm": [
        "What helped you feel settled today?",
        "Describe a place where you feel at peace in as much detail as you can.",
        "What are you grateful for in this quiet moment?",
        "How could you bring a little of today's calm into tomorrow?",
    ],
}

GENERAL_PROMPTS = [
    "How are you feeling right now, in three words? Expand on one of them.",
    "What was the highlight of your day, and what was the hardest part?",
    "What is one thing you learned about yourself this week?",
    "Write about something you are looking forward to.",
    "What would make tomorrow a good day?",
    "Which relationship in your life deserves more attention right now?",
]


class PromptGenerator(Protocol):
    def generate(self, mood: Optional[str], topic: Optional[str], *, seed: str, count: int) -> List[str]:
        ...


class PromptBankGenerator:
    """Picks prompts from the static bank, rotated by a stable seed."""

    def generate(self, mood: Optional[str], topic: Optional[str], *, seed: str, count: int = BASIC_SUGGESTION_COUNT) -> List[str]:
        pool = list(MOOD_PROMPTS.get((mood or "").strip().lower(), GENERAL_PROMPTS))
        offset = int(hashlib.sha256(f"{seed}:{mood}:{topic}".encode("utf-8")).hexdigest(), 16) % len(pool)
        picked = (pool[offset:] + pool[:offset])[:count]
        if topic and topic.strip():
            picked[-1] = f"Thinking about {topic.strip()}: what feelings come up, and where do you notice them?"
        return picked


default_generator: PromptGenerator = PromptBankGenerator()
