# Overview: Flask API routes for supplier settlements and payouts.

# backend/sillon/routes/payouts.py
"""
Supplier settlement and payout routes.

Settlements are computed on read and never stored. A payout is created from
whatever amounts the operator confirms (usually the computed settlement),
edited while pending, then marked paid once.

Period bounds are ISO dates and inclusive on both ends.
"""

from flask import Blueprint, jsonify, request

from ..errors import SettlementError, ValidationError
from ..models import SupplierPayout
from ..services import settlement_service
from ..validation import ModelValidationPolicy, enforce_rules_amounts, validate_payload
from .common import error_response, internal_error, json_body, run_command


payouts_bp = Blueprint("payouts", __name__, url_prefix="/api/payouts")
settlements_bp = Blueprint("settlements", __name__, url_prefix="/api/settlements")

PAYOUT_POLICY = ModelValidationPolicy(
    writable_fields={
        "supplier_id",
        "period_start",
        "period_end",
        "gross_sales_cents",
        "commission_cents",
        "payout_cents",
        "notes",
    },
    required_on_create={"supplier_id", "period_start", "period_end"},
)


def _period_args() -> tuple[str, str]:
    start = request.args.get("start")
    end = request.args.get("end")
    if not start or not end:
        raise ValidationError("start and end query parameters are required")
    return start, end


# =============================================================================
# SETTLEMENTS
# =============================================================================

@settlements_bp.get("/suppliers/<int:supplier_id>")
def supplier_settlement_route(supplier_id: int):
    """GET /api/settlements/suppliers/3?start=2024-03-01&end=2024-03-31"""
    try:
        start, end = _period_args()
        settlement = settlement_service.settle_supplier_period(supplier_id, start, end)
        return jsonify({"settlement": settlement.to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to compute supplier settlement")


@settlements_bp.get("/report")
def sales_report_route():
    try:
        start, end = _period_args()
        return jsonify(settlement_service.supplier_sales_report(start, end)), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to build supplier sales report")


# =============================================================================
# PAYOUTS
# =============================================================================

@payouts_bp.get("/")
def list_payouts_route():
    try:
        supplier_id = request.args.get("supplier_id", type=int)
        payouts = settlement_service.list_payouts(status=request.args.get("status"), supplier_id=supplier_id)
        return jsonify({
            "payouts": [p.to_dict() for p in payouts],
            "totals": settlement_service.payout_totals(),
        }), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list payouts")


@payouts_bp.post("/")
def create_payout_route():
    """
    Create a pending payout.

    Request body:
    {
        "supplier_id": 3,
        "period_start": "2024-03-01",
        "period_end": "2024-03-31",
        "gross_sales_cents": 10000,
        "commission_cents": 3000,
        "payout_cents": 7000,
        "notes": "March"  (optional)
    }
    """
    try:
        patch = validate_payload(
            model=SupplierPayout,
            payload=json_body(),
            policy=PAYOUT_POLICY,
            partial=False,
        )
        enforce_rules_amounts(patch)
        supplier_id = patch.pop("supplier_id")
        period_start = patch.pop("period_start")
        period_end = patch.pop("period_end")

        payout = run_command(
            lambda: settlement_service.create_payout(supplier_id, period_start, period_end, **patch)
        )
        return jsonify({"payout": payout.to_dict()}), 201

    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create payout")


@payouts_bp.patch("/<int:payout_id>")
def update_payout_route(payout_id: int):
    try:
        patch = validate_payload(
            model=SupplierPayout,
            payload=json_body(),
            policy=PAYOUT_POLICY,
            partial=True,
        )
        if "supplier_id" in patch:
            raise ValidationError("supplier_id cannot be changed")
        enforce_rules_amounts(patch)

        payout = run_command(lambda: settlement_service.update_payout(payout_id, **patch))
        return jsonify({"payout": payout.to_dict()}), 200

    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update payout")


@payouts_bp.post("/<int:payout_id>/mark-paid")
def mark_paid_route(payout_id: int):
    """
    Request body: {"payment_reference": "VIR-2024-03"} (optional)

    Returns:
        200: Payout paid, invoice number allocated
        404: Unknown payout
        409: Payout already paid
    """
    try:
        data = json_body()
        payout = run_command(
            lambda: settlement_service.mark_paid(payout_id, data.get("payment_reference"))
        )
        return jsonify({"payout": payout.to_dict()}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to mark payout paid")


@payouts_bp.delete("/<int:payout_id>")
def delete_payout_route(payout_id: int):
    try:
        run_command(lambda: settlement_service.delete_payout(payout_id))
        return jsonify({"deleted": payout_id}), 200
    except SettlementError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete payout")
