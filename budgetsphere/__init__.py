"""BudgetSphere agent routing package.

Architectural role:
    Routes a financial-assistant request to one of several specialized handlers
    ("agents") and adapts that routing over time from stored outcomes.

Composition:
    - `core`: request/response types, scoring, selection, execution, and the router.
    - `nlp`: static capability matching over request text and hints.
    - `memory`: episodic/semantic/procedural memory store and context snapshots.
    - `agents`: handler registry and the default financial handlers.
    - `prompting`: deterministic prompt assembly for handlers.
    - `llm`: text-completion transport and provider configuration.
"""

__version__ = "0.1.0"
