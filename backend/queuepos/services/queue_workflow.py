# Overview: Workflow profiles and the token status state machine (pure, no DB).

"""
Queue Workflow State Machine

Statuses: WAITING -> ... -> DONE, with CANCELLED reachable from any
non-terminal status. WAITING is the only initial status; DONE and
CANCELLED are the only terminal ones.

A shop's workflow profile is plain data: the order types it offers and the
ordered status path it walks. The path alone decides the single legal
"next" status for every current status, so profiles may skip stages (a
counter shop goes WAITING -> READY directly) without any branching here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from ..errors import IllegalTransition, ValidationError


WAITING = "WAITING"
CALLED = "CALLED"
IN_PROGRESS = "IN_PROGRESS"
READY = "READY"
DONE = "DONE"
CANCELLED = "CANCELLED"

STATUSES = (WAITING, CALLED, IN_PROGRESS, READY, DONE, CANCELLED)
TERMINAL_STATUSES = frozenset({DONE, CANCELLED})
ACTIVE_STATUSES = frozenset({WAITING, CALLED, IN_PROGRESS, READY})

# Older clients still send these
LEGACY_STATUS_MAP = {
    "IN_KITCHEN": IN_PROGRESS,
    "SERVED": DONE,
}

# Stage timestamp written the first time a status is reached
STATUS_TIMESTAMP_FIELDS = {
    CALLED: "called_at",
    IN_PROGRESS: "in_kitchen_at",
    READY: "ready_at",
    DONE: "served_at",
    CANCELLED: "cancelled_at",
}


@dataclass(frozen=True)
class OrderTypeOption:
    value: str
    label: str


@dataclass(frozen=True)
class WorkflowProfile:
    name: str
    order_types: tuple[OrderTypeOption, ...]
    status_path: tuple[str, ...]
    status_labels: dict = field(default_factory=dict)
    action_labels: dict = field(default_factory=dict)

    @property
    def default_order_type(self) -> str:
        return self.order_types[0].value

    def order_type_values(self) -> list[str]:
        return [option.value for option in self.order_types]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "order_types": [{"value": o.value, "label": o.label} for o in self.order_types],
            "status_path": list(self.status_path),
        }


PROFILES = {
    "restaurant": WorkflowProfile(
        name="restaurant",
        order_types=(
            OrderTypeOption("dine_in", "Dine-in"),
            OrderTypeOption("takeaway", "Takeaway"),
            OrderTypeOption("delivery", "Delivery"),
        ),
        status_path=(WAITING, CALLED, IN_PROGRESS, READY, DONE),
        status_labels={IN_PROGRESS: "In kitchen", DONE: "Served"},
        action_labels={IN_PROGRESS: "Send to kitchen", DONE: "Served"},
    ),
    "salon": WorkflowProfile(
        name="salon",
        order_types=(
            OrderTypeOption("walk_in", "Walk-in"),
            OrderTypeOption("appointment", "Appointment"),
            OrderTypeOption("home_service", "Home service"),
        ),
        status_path=(WAITING, CALLED, IN_PROGRESS, DONE),
        status_labels={IN_PROGRESS: "In service"},
        action_labels={IN_PROGRESS: "Start service"},
    ),
    "generic": WorkflowProfile(
        name="generic",
        order_types=(
            OrderTypeOption("onsite", "On-site"),
            OrderTypeOption("pickup", "Pickup"),
            OrderTypeOption("delivery", "Delivery"),
        ),
        status_path=(WAITING, CALLED, IN_PROGRESS, DONE),
    ),
    "quick_service": WorkflowProfile(
        name="quick_service",
        order_types=(
            OrderTypeOption("takeaway", "Takeaway"),
            OrderTypeOption("dine_in", "Dine-in"),
            OrderTypeOption("delivery", "Delivery"),
        ),
        status_path=(WAITING, CALLED, READY, DONE),
        action_labels={DONE: "Handed over"},
    ),
    "counter": WorkflowProfile(
        name="counter",
        order_types=(
            OrderTypeOption("pickup", "Pickup"),
            OrderTypeOption("delivery", "Delivery"),
        ),
        status_path=(WAITING, READY, DONE),
        action_labels={DONE: "Handed over"},
    ),
}

_BUSINESS_TYPE_RULES = (
    (re.compile(r"(salon|barber|beauty|parlou?r|spa)"), "salon"),
    (re.compile(r"(fast ?food|bakery|juice|kiosk)"), "quick_service"),
    (re.compile(r"(restaurant|resturant|cafe|food|hotel|tea|coffee|snack)"), "restaurant"),
)

DEFAULT_STATUS_LABELS = {
    WAITING: "Waiting",
    CALLED: "Called",
    IN_PROGRESS: "In progress",
    READY: "Ready",
    DONE: "Done",
    CANCELLED: "Cancelled",
}

DEFAULT_ACTION_LABELS = {
    CALLED: "Call",
    IN_PROGRESS: "Start",
    READY: "Ready",
    DONE: "Done",
}

ORDER_TYPE_ALIASES = {
    "dinein": "dine_in",
    "take_away": "takeaway",
    "walkin": "walk_in",
    "homeservice": "home_service",
    "on_site": "onsite",
    "pick_up": "pickup",
}


def sanitize_workflow(value: str | None) -> str | None:
    normalized = str(value or "").strip().lower()
    return normalized if normalized in PROFILES else None


def resolve_workflow_profile(business_type: str | None = None, override: str | None = None) -> WorkflowProfile:
    """Explicit override wins; otherwise match business type keywords; else generic."""
    name = sanitize_workflow(override)
    if name:
        return PROFILES[name]

    bt = str(business_type or "").strip().lower()
    for pattern, profile_name in _BUSINESS_TYPE_RULES:
        if pattern.search(bt):
            return PROFILES[profile_name]

    return PROFILES["generic"]


def profile_for_shop(shop) -> WorkflowProfile:
    return resolve_workflow_profile(shop.business_type, shop.queue_workflow)


def normalize_status(value: str | None) -> str:
    key = str(value or "").strip().upper()
    key = LEGACY_STATUS_MAP.get(key, key)
    if key not in STATUSES:
        raise ValidationError("Invalid queue token status", details={"status": value})
    return key


def next_action(current_status: str, profile: WorkflowProfile) -> str | None:
    """The single legal forward step from current_status, or None."""
    status = normalize_status(current_status)
    if status in TERMINAL_STATUSES:
        return None
    path = profile.status_path
    if status not in path:
        # Token created under a profile with a longer path: resume at the
        # first stage of this profile that lies beyond the current one.
        rank = STATUSES.index(status)
        for candidate in path:
            if STATUSES.index(candidate) > rank:
                return candidate
        return None
    idx = path.index(status)
    return path[idx + 1] if idx + 1 < len(path) else None


def next_action_label(current_status: str, profile: WorkflowProfile) -> dict | None:
    nxt = next_action(current_status, profile)
    if nxt is None:
        return None
    label = profile.action_labels.get(nxt) or DEFAULT_ACTION_LABELS.get(nxt, nxt.title())
    return {"status": nxt, "label": label}


def validate_transition(
    current_status: str,
    requested_status: str,
    profile: WorkflowProfile,
    *,
    settled: bool = False,
) -> str:
    """
    Return the normalized requested status if the move is legal, else raise IllegalTransition.

    CANCELLED is the universal escape from any non-terminal status; every
    other request must equal the profile's next step.
    """
    current = normalize_status(current_status)
    requested = normalize_status(requested_status)
    details = {"current_status": current, "requested_status": requested}

    if settled:
        raise IllegalTransition("Token is already settled; its workflow is frozen", details=details)

    if requested == CANCELLED:
        if current in TERMINAL_STATUSES:
            raise IllegalTransition(f"Token in {current} can no longer be cancelled", details=details)
        return requested

    expected = next_action(current, profile)
    if expected is None or expected != requested:
        details["expected_status"] = expected
        raise IllegalTransition(
            f"Status change {current} -> {requested} is not allowed in the {profile.name} workflow",
            details=details,
        )
    return requested


def status_sort_rank(status: str) -> int:
    return STATUSES.index(normalize_status(status))


def status_label(status: str, profile: WorkflowProfile) -> str:
    status = normalize_status(status)
    return profile.status_labels.get(status) or DEFAULT_STATUS_LABELS[status]


def _order_type_key(value: str | None) -> str:
    key = re.sub(r"[\s-]+", "_", str(value or "").strip().lower())
    return ORDER_TYPE_ALIASES.get(key, key)


def normalize_order_type(value: str | None, profile: WorkflowProfile) -> str:
    """Canonical order type for this profile; unknown values fall back to the default."""
    canonical = _order_type_key(value)
    if canonical in profile.order_type_values():
        return canonical
    return profile.default_order_type


def order_type_label(value: str | None, profile: WorkflowProfile) -> str:
    canonical = _order_type_key(value)
    for option in profile.order_types:
        if option.value == canonical:
            return option.label
    for other in PROFILES.values():
        for option in other.order_types:
            if option.value == canonical:
                return option.label
    return str(value or "").strip() or profile.order_types[0].label
