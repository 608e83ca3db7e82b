"""
PortMorph: whole-project source porting driven by an LLM oracle.

Resolves symbols and imports across files, schedules files in dependency
order, chunks oversized files, validates and repairs oracle output, and
persists resumable sessions.
"""

__version__ = "0.1.0"
