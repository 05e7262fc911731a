"""
Human-readable session ids: adjective-noun-verb, e.g. "calm-river-singing".
"""

from __future__ import annotations

import random
import time
from collections.abc import Awaitable, Callable

ADJECTIVES: tuple[str, ...] = (
    "happy", "bright", "swift", "clever", "gentle", "brave", "calm", "dark", "eager", "fair",
    "wise", "kind", "loud", "merry", "nice", "proud", "quick", "rare", "soft", "tall",
    "warm", "young", "wild", "bold", "cool", "deep", "pure", "rich", "safe", "sharp",
    "strong", "sweet", "tough", "vast", "vivid", "light", "quiet", "smart", "fresh", "grand",
    "clean", "clear", "great", "free", "broad", "keen", "real", "true", "full", "fine",
)  # fmt: skip

NOUNS: tuple[str, ...] = (
    "river", "mountain", "forest", "star", "ocean", "cloud", "desert", "garden", "island", "lake",
    "moon", "rain", "snow", "storm", "sun", "tree", "valley", "wind", "world", "bridge",
    "castle", "city", "door", "field", "fire", "flower", "harbor", "home", "light", "path",
    "road", "rock", "shore", "sky", "space", "spring", "stone", "stream", "summer", "tide",
    "tower", "trail", "wave", "wood", "dawn", "dusk", "echo", "frost", "mist", "shadow",
)  # fmt: skip

VERBS: tuple[str, ...] = (
    "running", "dancing", "singing", "jumping", "flying", "dreaming", "glowing", "hoping", "laughing", "playing",
    "reading", "sailing", "thinking", "walking", "writing", "seeking", "growing", "flowing", "shining", "smiling",
    "breathing", "climbing", "creating", "drifting", "exploring", "floating", "listening", "moving", "painting",
    "rising", "speaking", "swimming", "teaching", "watching", "wondering", "building", "caring", "drinking",
    "eating", "feeling", "helping", "knowing", "learning", "making", "resting", "seeing", "sleeping", "standing",
    "trying", "working",
)  # fmt: skip

MAX_ATTEMPTS = 50


def random_session_name(rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    return f"{rng.choice(ADJECTIVES)}-{rng.choice(NOUNS)}-{rng.choice(VERBS)}"


async def generate_session_name(
    exists: Callable[[str], Awaitable[bool]],
    rng: random.Random | None = None,
) -> str:
    """
    Draw names until one is free. After MAX_ATTEMPTS collisions a millisecond
    timestamp is appended, which is unique for a single local user.
    """
    name = ""
    for _ in range(MAX_ATTEMPTS):
        name = random_session_name(rng)
        if not await exists(name):
            return name
    return f"{name}-{int(time.time() * 1000)}"
