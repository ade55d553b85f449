# Overview: Named signals emitted after queue state is committed.

from blinker import Namespace

_signals = Namespace()

# Sent with sender=shop_id and reason=<"token.created" | "token.status" |
# "token.called" | "token.settled" | "day.closed">. Subscribers own the
# cached dashboard views and decide how to refresh them.
queue_board_changed = _signals.signal("queue-board-changed")


def notify_board_changed(shop_id: int, reason: str, **extra) -> None:
    queue_board_changed.send(shop_id, reason=reason, **extra)
