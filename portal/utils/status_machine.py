"""
Status machines for RFPs, bids and contracts.

All transition tables live here so routers and the lifecycle manager share
one definition.
"""
from enum import Enum
from typing import List


class RFPStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"
    AWARDED = "awarded"
    CANCELLED = "cancelled"


class BidStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    SHORTLISTED = "shortlisted"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class ContractStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    TERMINATED = "terminated"


class RFPStateMachine:
    """
    State machine for the RFP lifecycle.

    State Flow:
    draft → published ⇄ closed
                ↘        ↘
                 awarded (award workflow only)

    Any status except 'cancelled' may move to 'cancelled'.
    """

    TRANSITIONS = {
        RFPStatus.DRAFT: [RFPStatus.PUBLISHED, RFPStatus.CANCELLED],
        RFPStatus.PUBLISHED: [RFPStatus.CLOSED, RFPStatus.CANCELLED],
        RFPStatus.CLOSED: [RFPStatus.PUBLISHED, RFPStatus.CANCELLED],
        RFPStatus.AWARDED: [RFPStatus.CANCELLED],
        RFPStatus.CANCELLED: [],
    }

    # Statuses the award workflow may move to 'awarded'
    AWARDABLE = [RFPStatus.PUBLISHED, RFPStatus.CLOSED]

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check a direct (non-award) transition"""
        if to_status == RFPStatus.AWARDED:
            return False
        try:
            current = RFPStatus(from_status)
        except ValueError:
            return False
        return to_status in cls.TRANSITIONS[current]

    @classmethod
    def get_allowed_transitions(cls, current_status: str) -> List[str]:
        try:
            return [s.value for s in cls.TRANSITIONS[RFPStatus(current_status)]]
        except ValueError:
            return []

    @classmethod
    def can_receive_bids(cls, status: str) -> bool:
        return status == RFPStatus.PUBLISHED

    @classmethod
    def can_edit(cls, status: str) -> bool:
        return status in (RFPStatus.DRAFT, RFPStatus.PUBLISHED, RFPStatus.CLOSED)

    @classmethod
    def can_award(cls, status: str) -> bool:
        return status in cls.AWARDABLE


class BidStateMachine:
    """
    Admin review statuses for bids.

    'approved' is reached only through the award workflow. An approved bid
    is locked.
    """

    ADMIN_SETTABLE = [
        BidStatus.PENDING,
        BidStatus.UNDER_REVIEW,
        BidStatus.SHORTLISTED,
        BidStatus.REJECTED,
    ]

    # Bids still competing for the award
    OPEN = [BidStatus.PENDING, BidStatus.UNDER_REVIEW, BidStatus.SHORTLISTED]

    # Bids that can no longer be awarded
    FINAL = [BidStatus.APPROVED, BidStatus.REJECTED, BidStatus.WITHDRAWN]

    @classmethod
    def is_admin_settable(cls, status: str) -> bool:
        return status in cls.ADMIN_SETTABLE

    @classmethod
    def is_locked(cls, status: str) -> bool:
        return status == BidStatus.APPROVED

    @classmethod
    def is_open(cls, status: str) -> bool:
        return status in cls.OPEN

    @classmethod
    def can_award(cls, status: str) -> bool:
        return status not in cls.FINAL

    @classmethod
    def can_withdraw(cls, status: str) -> bool:
        return status not in cls.FINAL


class ContractStateMachine:
    TRANSITIONS = {
        ContractStatus.ACTIVE: [ContractStatus.COMPLETED, ContractStatus.TERMINATED],
        ContractStatus.COMPLETED: [],
        ContractStatus.TERMINATED: [],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        try:
            current = ContractStatus(from_status)
        except ValueError:
            return False
        return to_status in cls.TRANSITIONS[current]
