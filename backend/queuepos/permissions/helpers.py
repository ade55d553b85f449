# Overview: Utility functions for permission lookups.

from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_role_names():
    return sorted(DEFAULT_ROLE_PERMISSIONS)
