# Overview: Flask API routes for the order queue; parses input and returns JSON responses.

"""
Queue token API routes.

Every route runs as the authenticated user and within their shop scope
(g.scope_shop_id); a shop or token outside that scope answers 404.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import QueueError
from ..decorators import require_auth, require_permission
from ..services import day_close_service, queue_token_service, settlement_service
from ..services.permission_service import assert_shop_access
from ..services.reservation_service import get_queue_product_options
from ..services.sales_service import SaleError
from ..services.shop_service import require_shop


queue_bp = Blueprint("queue", __name__, url_prefix="/api/queue")


def _error(e: QueueError):
    return jsonify(e.to_dict()), e.status_code


def _check_shop(shop_id: int) -> None:
    assert_shop_access(g.current_user, shop_id)


@queue_bp.get("/shops/<int:shop_id>/products")
@require_auth
@require_permission("CREATE_QUEUE_TOKEN")
def product_options_route(shop_id: int):
    """Active products with how many can still be promised right now."""
    try:
        _check_shop(shop_id)
        require_shop(shop_id, g.scope_shop_id)
        return jsonify({"products": get_queue_product_options(shop_id)}), 200
    except QueueError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load queue product options")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.get("/shops/<int:shop_id>/board")
@require_auth
@require_permission("VIEW_QUEUE_BOARD")
def board_route(shop_id: int):
    try:
        _check_shop(shop_id)
        snapshot = queue_token_service.get_board_snapshot(
            shop_id,
            request.args.get("business_date"),
            scope_shop_id=g.scope_shop_id,
        )
        return jsonify(snapshot), 200
    except QueueError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load queue board")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.post("/tokens")
@require_auth
@require_permission("CREATE_QUEUE_TOKEN")
def create_token_route():
    """
    Accept a pending order.

    Body: {"shop_id", "items": [{"product_id", "quantity"}], "order_type",
    "customer_name", "customer_phone", "note"}
    """
    try:
        data = request.get_json(silent=True) or {}
        shop_id = data.get("shop_id") or g.scope_shop_id
        if not shop_id:
            return jsonify({"error": "shop_id required"}), 400
        try:
            shop_id = int(shop_id)
        except (TypeError, ValueError):
            return jsonify({"error": "shop_id must be an integer"}), 400
        _check_shop(shop_id)

        token = queue_token_service.create_token(
            shop_id,
            data.get("items"),
            order_type=data.get("order_type"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            note=data.get("note"),
            actor_user_id=g.current_user.id,
            scope_shop_id=g.scope_shop_id,
        )
        return jsonify({"token": token.to_dict()}), 201
    except QueueError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create queue token")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.post("/shops/<int:shop_id>/call-next")
@require_auth
@require_permission("UPDATE_QUEUE_TOKEN_STATUS")
def call_next_route(shop_id: int):
    try:
        _check_shop(shop_id)
        data = request.get_json(silent=True) or {}
        token = queue_token_service.call_next(
            shop_id,
            data.get("business_date"),
            actor_user_id=g.current_user.id,
            scope_shop_id=g.scope_shop_id,
        )
        if token is None:
            return jsonify({"token": None, "message": "No waiting tokens"}), 200
        return jsonify({"token": token.to_dict()}), 200
    except QueueError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to call next queue token")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.post("/tokens/<int:token_id>/status")
@require_auth
@require_permission("UPDATE_QUEUE_TOKEN_STATUS")
def update_status_route(token_id: int):
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        token = queue_token_service.update_status(
            token_id,
            status,
            actor_user_id=g.current_user.id,
            scope_shop_id=g.scope_shop_id,
        )
        return jsonify({"token": token.to_dict()}), 200
    except QueueError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update queue token status")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.post("/tokens/<int:token_id>/settle")
@require_auth
@require_permission("SETTLE_QUEUE_TOKEN")
def settle_route(token_id: int):
    """
    Convert the token into a sale. Safe to retry: a token that is already
    settled answers 200 with the existing sale_id.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = settlement_service.settle(
            token_id,
            note=data.get("note"),
            actor_user_id=g.current_user.id,
            scope_shop_id=g.scope_shop_id,
        )
        return jsonify(result.to_dict()), 200 if result.already_settled else 201
    except QueueError as e:
        return _error(e)
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to settle queue token")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.post("/shops/<int:shop_id>/close-day")
@require_auth
@require_permission("CLOSE_QUEUE_DAY")
def close_day_route(shop_id: int):
    try:
        _check_shop(shop_id)
        data = request.get_json(silent=True) or {}
        result = day_close_service.close_day(
            shop_id,
            data.get("business_date"),
            actor_user_id=g.current_user.id,
            scope_shop_id=g.scope_shop_id,
        )
        return jsonify(result.to_dict()), 200
    except QueueError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to close queue day")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.get("/tokens/<int:token_id>")
@require_auth
@require_permission("PRINT_QUEUE_TOKEN")
def get_token_route(token_id: int):
    """Token with items and shop header, for receipt printing."""
    try:
        data = queue_token_service.get_print_data(token_id, g.scope_shop_id)
        return jsonify({"token": data}), 200
    except QueueError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load queue token")
        return jsonify({"error": "Internal server error"}), 500
