# Overview: Flask API routes for stock movements, counts and ledger replay.

# backend/sillon/routes/inventory.py
"""
Stock ledger routes.

Every stock change goes through stock_service.apply_movement; there is no
route that writes Product.stock directly.

Movement quantities:
- purchase, return, consignment_in, sale_reversal, sale, loss,
  consignment_out take a positive magnitude
- adjustment and sale_adjustment take the signed change
"""
from flask import Blueprint, jsonify, request

from ..errors import SettlementError, ValidationError
from ..models import StockMovement
from ..services import stock_service
from ..validation import ModelValidationPolicy, enforce_rules_amounts, validate_payload
from .common import error_response, internal_error, json_body, run_command


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/products")

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "type",
        "quantity",
        "order_id",
        "supplier_id",
        "unit_cost_cents",
        "reason",
        "reference",
        "created_by",
    },
    required_on_create={"type", "quantity"},
)


def _limit_arg(default: int = 200) -> int:
    raw = request.args.get("limit")
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError("limit must be an integer") from None
    return max(1, min(value, 1000))


@inventory_bp.get("/<int:product_id>/stock")
def get_stock_route(product_id: int):
    try:
        return jsonify({"product_id": product_id, "stock": stock_service.get_stock(product_id)}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to read stock")


@inventory_bp.get("/<int:product_id>/movements")
def list_movements_route(product_id: int):
    try:
        movements = stock_service.list_movements(
            product_id=product_id,
            movement_type=request.args.get("type"),
            limit=_limit_arg(),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list stock movements")


@inventory_bp.post("/<int:product_id>/movements")
def apply_movement_route(product_id: int):
    """
    Record a stock movement.

    Request body:
    {
        "type": "purchase",
        "quantity": 5,
        "unit_cost_cents": 800,  (optional)
        "reason": "Restock",  (optional)
        "reference": "PO-42"  (optional)
    }

    Returns:
        201: Movement recorded, with the product's new stock
        400: Invalid type or quantity
        404: Unknown product
        409: Concurrent update could not be resolved
    """
    try:
        patch = validate_payload(
            model=StockMovement,
            payload=json_body(),
            policy=MOVEMENT_POLICY,
            partial=False,
        )
        enforce_rules_amounts(patch)

        movement_type = patch.pop("type")
        quantity = patch.pop("quantity")
        movement = run_command(
            lambda: stock_service.apply_movement(product_id, movement_type, quantity, **patch)
        )
        return jsonify({"movement": movement.to_dict(), "stock": movement.stock_after}), 201

    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to apply stock movement")


@inventory_bp.post("/<int:product_id>/adjust")
def adjust_stock_route(product_id: int):
    """
    Correct stock to a counted value.

    Request body: {"stock": 12, "reason": "Monthly count"}
    """
    try:
        data = json_body()
        if "stock" not in data:
            raise ValidationError("stock is required")
        movement = run_command(
            lambda: stock_service.adjust_stock(
                product_id,
                data["stock"],
                reason=data.get("reason"),
                created_by=data.get("created_by"),
            )
        )
        return jsonify({
            "movement": movement.to_dict() if movement else None,
            "stock": stock_service.get_stock(product_id),
        }), 200

    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to adjust stock")


@inventory_bp.get("/<int:product_id>/replay")
def replay_stock_route(product_id: int):
    try:
        return jsonify({"replay": stock_service.replay_stock(product_id).to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to replay stock ledger")


@inventory_bp.get("/low-stock")
def low_stock_route():
    try:
        raw = request.args.get("threshold")
        threshold = None
        if raw is not None:
            try:
                threshold = int(raw)
            except ValueError:
                raise ValidationError("threshold must be an integer") from None
        products = stock_service.list_low_stock(threshold)
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list low stock products")
