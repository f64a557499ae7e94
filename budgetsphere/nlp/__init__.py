"""NLP utilities for routing.

Module scope:
- Static capability matching of request text and declared hints against handler
  categories (`capability_matcher`).

Determinism profile:
- Pure keyword rules; no model inference.
"""
