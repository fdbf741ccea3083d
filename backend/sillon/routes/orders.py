# Overview: Flask API routes for orders and order items; parses input and returns JSON responses.

# backend/sillon/routes/orders.py
"""
Order and order item routes.

DESIGN:
- Orders are created with their items in one transaction
- Generic status changes go through /status; cancel and refund have their
  own routes because they carry a reason
- Item cancel/return/quantity routes drive the item lifecycle; the parent
  order is re-evaluated (auto-cancel, totals) inside the same command
"""

from flask import Blueprint, jsonify, request

from ..errors import SettlementError, ValidationError
from ..models import Order
from ..services import ledger_service, order_item_service, order_service
from ..validation import ModelValidationPolicy, enforce_rules_amounts, validate_payload
from .common import error_response, internal_error, json_body, run_command


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")
order_items_bp = Blueprint("order_items", __name__, url_prefix="/api/order-items")

ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"customer_name", "discount_cents", "shipping_cents", "tax_cents", "payment_status"},
)


def _item_lines(raw) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("items must be a list")
    lines = []
    for line in raw:
        if not isinstance(line, dict) or "product_id" not in line or "quantity" not in line:
            raise ValidationError("each item needs product_id and quantity")
        lines.append(line)
    return lines


# =============================================================================
# ORDERS
# =============================================================================

@orders_bp.get("/")
def list_orders_route():
    try:
        orders = order_service.list_orders(status=request.args.get("status"))
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list orders")


@orders_bp.post("/")
def create_order_route():
    """
    Create an order and sell its items.

    Request body:
    {
        "customer_name": "Jeanne",  (optional)
        "items": [{"product_id": 1, "quantity": 2, "unit_price_cents": 2000}],
        "discount_cents": 0, "shipping_cents": 500, "tax_cents": 0  (optional)
    }

    Returns:
        201: Order created
        400: Invalid input
        404: Unknown product
    """
    try:
        data = dict(json_body())
        lines = _item_lines(data.pop("items", None))
        patch = validate_payload(model=Order, payload=data, policy=ORDER_CREATE_POLICY, partial=True)
        enforce_rules_amounts(patch)

        order = run_command(lambda: order_service.create_order(lines, **patch))
        return jsonify({"order": order.to_dict(include_items=True)}), 201

    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create order")


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load order")


@orders_bp.get("/<int:order_id>/events")
def list_order_events_route(order_id: int):
    """Order history (status changes, auto-cancel, refund) newest first."""
    try:
        order_service.get_order(order_id)
        events = ledger_service.list_ledger_events(entity_type="order", entity_id=order_id)
        return jsonify({"events": [ev.to_dict() for ev in events]}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load order history")


@orders_bp.post("/<int:order_id>/items")
def add_item_route(order_id: int):
    try:
        data = json_body()
        line = _item_lines([data])[0]
        item = run_command(
            lambda: order_item_service.add_item(
                order_id,
                line["product_id"],
                line["quantity"],
                line.get("unit_price_cents"),
                title=line.get("title"),
            )
        )
        return jsonify({"item": item.to_dict()}), 201
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to add order item")


@orders_bp.post("/<int:order_id>/status")
def set_status_route(order_id: int):
    """Request body: {"status": "confirmed"}"""
    try:
        data = json_body()
        order = run_command(lambda: order_service.set_status(order_id, data.get("status")))
        return jsonify({"order": order.to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to change order status")


@orders_bp.post("/<int:order_id>/ship")
def ship_order_route(order_id: int):
    """Request body: {"tracking_number": "...", "tracking_url": "..."} (both optional)"""
    try:
        data = json_body()
        order = run_command(
            lambda: order_service.ship_order(order_id, data.get("tracking_number"), data.get("tracking_url"))
        )
        return jsonify({"order": order.to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to ship order")


@orders_bp.post("/<int:order_id>/cancel")
def cancel_order_route(order_id: int):
    """Request body: {"reason": "Customer changed their mind"}"""
    try:
        data = json_body()
        order = run_command(lambda: order_service.cancel_order(order_id, data.get("reason")))
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to cancel order")


@orders_bp.post("/<int:order_id>/refund")
def refund_order_route(order_id: int):
    try:
        data = json_body()
        order = run_command(lambda: order_service.refund_order(order_id, data.get("reason")))
        return jsonify({"order": order.to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to refund order")


@orders_bp.post("/<int:order_id>/refund-request")
def request_refund_route(order_id: int):
    try:
        data = json_body()
        order = run_command(lambda: order_service.request_refund(order_id, data.get("reason")))
        return jsonify({"order": order.to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record refund request")


@orders_bp.post("/<int:order_id>/payment-status")
def set_payment_status_route(order_id: int):
    try:
        data = json_body()
        order = run_command(lambda: order_service.set_payment_status(order_id, data.get("payment_status")))
        return jsonify({"order": order.to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to change payment status")


# =============================================================================
# ORDER ITEMS
# =============================================================================

@order_items_bp.post("/<int:item_id>/cancel")
def cancel_item_route(item_id: int):
    """
    Cancel an active item and restore its stock.

    Returns:
        200: Item cancelled (order may have been auto-cancelled)
        404: Unknown item
        409: Item already cancelled or returned
    """
    try:
        data = json_body()
        item = run_command(lambda: order_item_service.cancel_item(item_id, reason=data.get("reason")))
        return jsonify({"item": item.to_dict(), "order": item.order.to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to cancel order item")


@order_items_bp.post("/<int:item_id>/return")
def return_item_route(item_id: int):
    """Request body: {"reason": "Damaged sleeve"} (required)"""
    try:
        data = json_body()
        item = run_command(lambda: order_item_service.return_item(item_id, data.get("reason")))
        return jsonify({"item": item.to_dict(), "order": item.order.to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to return order item")


@order_items_bp.post("/<int:item_id>/quantity")
def update_quantity_route(item_id: int):
    """Request body: {"quantity": 5}"""
    try:
        data = json_body()
        item = run_command(lambda: order_item_service.update_quantity(item_id, data.get("quantity")))
        return jsonify({"item": item.to_dict(), "order": item.order.to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to change item quantity")
