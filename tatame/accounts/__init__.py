"""
TATAME accounts: registration, login and profile lookup.
"""

from .store import UserStore

__all__ = ["UserStore"]
