"""Built-in task sources.

- S-NIAH: synthetic needle-in-a-haystack retrieval over growing contexts
- OOLONG: long-context aggregation questions from pre-downloaded JSONL
- ARC: ARC-AGI grid transformation puzzles from pre-downloaded JSON

Each loader takes an EvalConfig and returns the ordered task list.
"""

from rlm_eval.datasets.arc import load_arc_from_config, load_arc_tasks
from rlm_eval.datasets.oolong import load_oolong_from_config, load_oolong_tasks
from rlm_eval.datasets.sniah import generate_sniah_tasks, load_sniah_tasks

__all__ = [
    "generate_sniah_tasks",
    "load_arc_from_config",
    "load_arc_tasks",
    "load_oolong_from_config",
    "load_oolong_tasks",
    "load_sniah_tasks",
]
