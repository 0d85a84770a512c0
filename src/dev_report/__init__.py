"""Dev Report: work reports synthesized from git history.

Aggregates commit statistics across registered repositories for a
reporting period and streams an LLM-written daily, weekly, monthly,
quarterly or yearly summary.
"""

__version__ = "0.1.0"
