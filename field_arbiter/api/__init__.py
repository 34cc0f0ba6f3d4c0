"""
Public API for the field arbiter.
"""

from field_arbiter.api.system import ArbiterSystem

__all__ = ["ArbiterSystem"]
