"""Tutor: the response pipeline behind every AI reply shown to a child.

Turns a raw completion from the LLM provider into a reply that is
resilient to provider failures, age-appropriate, and bounded in cost
and context size.
"""

__version__ = "0.1.0"
