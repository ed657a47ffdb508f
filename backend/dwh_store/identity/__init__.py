"""
Identity module for dwh-store - entities and their on-chain accounts.
"""

from .graph import Account, Entity, IdentityGraph, normalize_address

__all__ = ["Account", "Entity", "IdentityGraph", "normalize_address"]
