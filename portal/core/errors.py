"""
Business-rule errors raised by the lifecycle manager.

Each error carries the HTTP status the API answers with and a stable code
clients can switch on.
"""
from fastapi import Request
from fastapi.responses import JSONResponse


class LifecycleError(Exception):
    status_code = 400
    code = "lifecycle_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self)


class RFPNotOpen(LifecycleError):
    """RFP is not accepting bids"""
    code = "rfp_not_open"


class DuplicateBid(LifecycleError):
    """Vendor has already submitted a bid for this RFP"""
    status_code = 409
    code = "duplicate_bid"


class InvalidAmount(LifecycleError):
    """Bid amount must be greater than zero"""
    code = "invalid_amount"


class InvalidProposal(LifecycleError):
    """Proposal text is required"""
    code = "invalid_proposal"


class BidNotFound(LifecycleError):
    """Bid not found"""
    status_code = 404
    code = "bid_not_found"


class BidLocked(LifecycleError):
    """Bid can no longer change status"""
    status_code = 409
    code = "bid_locked"


class InvalidContractTerms(LifecycleError):
    """Contract value must be positive and start date before end date"""
    code = "invalid_contract_terms"


class RFPAlreadyAwarded(LifecycleError):
    """RFP has already been awarded"""
    status_code = 409
    code = "rfp_already_awarded"


class InvalidTransition(LifecycleError):
    """Status transition not allowed"""
    code = "invalid_transition"


class RFPHasBids(LifecycleError):
    """RFP has bids and cannot be deleted"""
    status_code = 409
    code = "rfp_has_bids"


class RFPNotFound(LifecycleError):
    """RFP not found"""
    status_code = 404
    code = "rfp_not_found"


class ContractNotFound(LifecycleError):
    """Contract not found"""
    status_code = 404
    code = "contract_not_found"


class NotificationNotFound(LifecycleError):
    """Notification not found"""
    status_code = 404
    code = "notification_not_found"


class ProfileNotFound(LifecycleError):
    """Profile not found"""
    status_code = 404
    code = "profile_not_found"


class CategoryNotFound(LifecycleError):
    """Category not found"""
    status_code = 404
    code = "category_not_found"


class DocumentNotFound(LifecycleError):
    """Document not found"""
    status_code = 404
    code = "document_not_found"


def lifecycle_error_handler(_: Request, exc: LifecycleError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )
