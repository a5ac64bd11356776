"""
Audit trail endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import BankingSystem, get_banking_system
from .schemas import ChainReportResponse
from ..audit import AuditTrail


router = APIRouter()


def require_audit_trail(system: BankingSystem) -> AuditTrail:
    """The configured audit trail, or 404 when audit logging is switched off"""
    if system.audit_trail is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit logging is disabled")
    return system.audit_trail


@router.get("/verify", response_model=ChainReportResponse)
def verify_audit_chain(system: BankingSystem = Depends(get_banking_system)):
    """Check every stored audit event against its hash and its predecessor"""
    report = require_audit_trail(system).verify_chain()
    return ChainReportResponse(
        valid=report.valid,
        total_events=report.total_events,
        first_broken_event=report.first_broken_event
    )
