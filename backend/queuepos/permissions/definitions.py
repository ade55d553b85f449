# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- QUEUE --

QUEUE_PERMISSIONS = [
    (
        "VIEW_QUEUE_BOARD",
        "View Queue Board",
        "See the day's tokens and their status",
        PermissionCategory.QUEUE,
    ),
    (
        "CREATE_QUEUE_TOKEN",
        "Create Queue Token",
        "Accept a new pending order into the queue",
        PermissionCategory.QUEUE,
    ),
    (
        "UPDATE_QUEUE_TOKEN_STATUS",
        "Update Token Status",
        "Call, advance or cancel queue tokens",
        PermissionCategory.QUEUE,
    ),
    (
        "PRINT_QUEUE_TOKEN",
        "Print Queue Token",
        "Load token slips for printing",
        PermissionCategory.QUEUE,
    ),
    (
        "CLOSE_QUEUE_DAY",
        "Close Queue Day",
        "Cancel every token left pending at the end of a business day",
        PermissionCategory.QUEUE,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "SETTLE_QUEUE_TOKEN",
        "Settle Queue Token",
        "Convert a queue token into a cash sale",
        PermissionCategory.SALES,
    ),
]


PERMISSION_DEFINITIONS = QUEUE_PERMISSIONS + SALES_PERMISSIONS
