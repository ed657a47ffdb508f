"""
Projects module for dwh-store - projects anchored to account addresses.
"""

from .registry import MUTABLE_FIELDS, Project, ProjectRegistry

__all__ = ["MUTABLE_FIELDS", "Project", "ProjectRegistry"]
