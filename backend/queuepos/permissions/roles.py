# Overview: Default role -> permission assignments.

from .definitions import PERMISSION_DEFINITIONS

_ALL = {perm[0] for perm in PERMISSION_DEFINITIONS}

DEFAULT_ROLE_PERMISSIONS = {
    "owner": set(_ALL),
    "manager": set(_ALL),
    "cashier": {
        "VIEW_QUEUE_BOARD",
        "CREATE_QUEUE_TOKEN",
        "UPDATE_QUEUE_TOKEN_STATUS",
        "PRINT_QUEUE_TOKEN",
        "SETTLE_QUEUE_TOKEN",
    },
    # Kitchen screens move tokens along but never take money
    "kitchen": {
        "VIEW_QUEUE_BOARD",
        "UPDATE_QUEUE_TOKEN_STATUS",
    },
}
