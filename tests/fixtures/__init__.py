"""
Test Fixtures Package

Reusable stand-ins for external dependencies:
- InMemoryDojoDb: dict-backed replacement for SupabaseTool

Usage:
    from tests.fixtures.dojo_fixtures import InMemoryDojoDb
"""

from tests.fixtures.dojo_fixtures import InMemoryDojoDb

__all__ = [
    "InMemoryDojoDb",
]
