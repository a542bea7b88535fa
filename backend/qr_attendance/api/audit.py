"""Attendance consistency audit endpoints (admin only)."""
from itertools import islice
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from qr_attendance.services.audit_service import AuditService
from qr_attendance.utils.decorators import admin_required
from qr_attendance.utils.helpers import success_response

audit_bp = Blueprint('audit', __name__)

MAX_LISTED = 500

@audit_bp.route('/violations', methods=['GET'])
@jwt_required()
@admin_required
def list_violations():
    """Keys currently held by more than one attendance row."""
    limit = min(request.args.get('limit', 100, type=int), MAX_LISTED)
    violations = list(islice(AuditService.find_violations(), limit))
    return success_response(data={
        'violations': [v.to_dict() for v in violations],
        'count': len(violations)
    })

@audit_bp.route('/repair', methods=['POST'])
@jwt_required()
@admin_required
def repair_violations():
    """Collapse every duplicate group onto its canonical row."""
    repaired = AuditService.repair_all()
    return success_response(data={'repaired': repaired},
                            message=f"Repaired {repaired} duplicate group(s)")
