"""S-NIAH (single needle in a haystack) task generator.

Each task hides one "secret code" sentence at a random position inside
filler text of a target length and asks the agent to retrieve it.
Generation is deterministic for a given seed.
"""

import random

from rlm_eval.config import EvalConfig
from rlm_eval.types import Task

DEFAULT_CONTEXT_LENGTHS = [8192, 16384, 32768, 65536, 131072, 262144]
DEFAULT_TASKS_PER_LENGTH = 8
DEFAULT_SEED = 42

FILLER_WORDS = [
    "The", "committee", "discussed", "various", "aspects", "of", "the",
    "proposed", "development", "plan", "including", "budget", "allocations",
    "timeline", "estimates", "resource", "requirements", "and", "potential",
    "risks", "associated", "with", "implementation", "across", "multiple",
    "departments", "throughout", "organization", "Several", "members",
    "raised", "concerns", "about", "feasibility", "while", "others",
    "expressed", "optimism", "regarding", "expected", "outcomes", "in",
    "quarterly", "review", "session", "management", "presented", "findings",
    "from", "recent", "analysis", "conducted", "by", "external",
    "consultants", "who", "recommended", "strategic", "approach", "for",
    "achieving", "long", "term", "objectives", "set", "forth", "previous",
    "fiscal", "year", "planning", "documents", "were", "reviewed",
    "updated", "reflect", "current", "market", "conditions", "regulatory",
    "changes", "that", "could", "impact", "operations", "going", "forward",
    "into", "next", "period", "After", "thorough", "deliberation",
    "group", "agreed", "proceed", "modified", "version", "original",
    "proposal", "incorporating", "feedback", "received", "during",
    "stakeholder", "engagement", "sessions", "held", "over", "past",
    "weeks", "Additional", "research", "was", "requested", "to", "address",
    "remaining", "questions", "before", "final", "decision", "can", "be",
    "made",
]  # fmt: skip

PROJECT_NAMES = [
    "Alpha", "Bravo", "Charlie", "Delta", "Echo", "Foxtrot", "Golf", "Hotel",
    "India", "Juliet", "Kilo", "Lima", "Mike", "November", "Oscar", "Papa",
    "Quebec", "Romeo", "Sierra", "Tango", "Uniform", "Victor", "Whiskey", "Xray",
]  # fmt: skip

CODE_ADJECTIVES = [
    "crimson", "azure", "golden", "silver", "emerald", "cobalt", "amber",
    "violet", "scarlet", "onyx", "ivory", "jade", "coral", "sapphire",
    "bronze", "copper", "pearl", "ruby",
]  # fmt: skip

CODE_NOUNS = [
    "falcon", "phoenix", "dragon", "eagle", "wolf", "panther", "hawk",
    "tiger", "cobra", "viper", "orca", "raven", "fox", "lion", "bear",
    "shark", "condor", "mantis",
]  # fmt: skip


def _filler_text(rng: random.Random, target_chars: int) -> str:
    sentences: list[str] = []
    total_chars = 0
    while total_chars < target_chars:
        words = [rng.choice(FILLER_WORDS) for _ in range(rng.randint(8, 22))]
        words[0] = words[0][:1].upper() + words[0][1:]
        sentence = " ".join(words) + "."
        sentences.append(sentence)
        total_chars += len(sentence) + 1
    return " ".join(sentences)


def _needle(rng: random.Random) -> tuple[str, str, str]:
    """Return (needle sentence, project id, code)."""
    project_id = f"{rng.choice(PROJECT_NAMES)}{rng.randint(100, 999)}"
    code = f"{rng.choice(CODE_ADJECTIVES)}-{rng.choice(CODE_NOUNS)}-{rng.randint(1000, 9999)}"
    return f"The secret code for Project {project_id} is: {code}", project_id, code


def _haystack(rng: random.Random, needle: str, target_length: int) -> str:
    position = rng.random()
    filler_chars = max(0, target_length - (len(needle) + 2))
    before_chars = int(filler_chars * position)
    after_chars = filler_chars - before_chars
    before = _filler_text(rng, before_chars)
    after = _filler_text(rng, after_chars)
    return f"{before}\n{needle}\n{after}"


def generate_sniah_tasks(
    tasks_per_length: int = DEFAULT_TASKS_PER_LENGTH,
    context_lengths: list[int] | None = None,
    seed: int = DEFAULT_SEED,
) -> list[Task]:
    """Generate ``tasks_per_length`` tasks for each context length."""
    rng = random.Random(seed)
    tasks: list[Task] = []

    for context_len in context_lengths or DEFAULT_CONTEXT_LENGTHS:
        for i in range(tasks_per_length):
            needle, project_id, code = _needle(rng)
            context = _haystack(rng, needle, context_len)
            tasks.append(
                Task(
                    id=f"s-niah-{context_len}-{i}",
                    query=f"What is the secret code for Project {project_id}?",
                    context=context,
                    expected_answer=code,
                    metadata={
                        "context_length": context_len,
                        "task_index": i,
                        "needle_position": context.index(needle) / len(context),
                    },
                )
            )

    return tasks


def load_sniah_tasks(config: EvalConfig) -> list[Task]:
    return generate_sniah_tasks(
        tasks_per_length=config.tasks_per_length, seed=config.seed
    )
