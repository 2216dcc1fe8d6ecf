from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
import uuid

import pytest
from sqlalchemy import update

from portal.core.errors import (
    BidLocked, BidNotFound, ContractNotFound, InvalidContractTerms,
    InvalidTransition, RFPAlreadyAwarded,
)
from portal.db.models import RFP, Bid, Contract, Notification
from portal.services.lifecycle import LifecycleManager

START = date(2024, 7, 1)
END = date(2024, 12, 31)


@pytest.fixture
def competing_bids(manager, published_rfp, other_vendor, third_vendor):
    second = manager.submit_bid(published_rfp.id, other_vendor.id, 1100, "Second offer").record
    third = manager.submit_bid(published_rfp.id, third_vendor.id, 1300, "Third offer").record
    return second, third


def test_award_moves_everything_at_once(manager, db, published_rfp, bid, vendor, competing_bids):
    second, third = competing_bids
    manager.set_bid_status(second.id, "shortlisted")

    contract = manager.award_contract(bid.id, Decimal("1000"), START, END, terms="Net 30")

    assert contract.rfp_id == published_rfp.id
    assert contract.bid_id == bid.id
    assert contract.vendor_id == vendor.id
    assert contract.contract_value == Decimal("1000")
    assert contract.start_date == START
    assert contract.end_date == END
    assert contract.terms == "Net 30"
    assert contract.status == "active"

    db.expire_all()
    assert db.get(RFP, published_rfp.id).status == "awarded"
    assert db.get(Bid, bid.id).status == "approved"
    assert db.get(Bid, second.id).status == "rejected"
    assert db.get(Bid, third.id).status == "rejected"
    assert db.query(Contract).count() == 1


def test_award_leaves_withdrawn_bids_alone(manager, db, bid, competing_bids, third_vendor):
    _, third = competing_bids
    manager.withdraw_bid(third.id, third_vendor.id)

    manager.award_contract(bid.id, 1000, START, END)

    db.expire_all()
    assert db.get(Bid, third.id).status == "withdrawn"


def test_award_notifies_winner(manager, db, published_rfp, bid, vendor, other_vendor, competing_bids):
    manager.award_contract(bid.id, 1000, START, END)

    notification = db.query(Notification).filter(Notification.user_id == vendor.id).one()
    assert notification.title == "Contract Awarded"
    assert notification.message == (
        'Congratulations! Your bid for "Berth 4 maintenance dredging" has been approved '
        "and you have been awarded the contract."
    )
    assert notification.type == "contract_award"
    assert notification.link == "/bids"
    assert notification.read is False

    # Losing vendors are not notified
    assert db.query(Notification).filter(Notification.user_id == other_vendor.id).count() == 0


def test_award_closed_rfp(manager, db, published_rfp, bid):
    manager.set_rfp_status(published_rfp.id, "closed")
    manager.award_contract(bid.id, 1000, START, END)
    db.expire_all()
    assert db.get(RFP, published_rfp.id).status == "awarded"


def test_award_missing_bid(manager):
    with pytest.raises(BidNotFound):
        manager.award_contract(uuid.uuid4(), 1000, START, END)


def test_award_approved_bid_again(manager, bid):
    manager.award_contract(bid.id, 1000, START, END)
    with pytest.raises(BidLocked):
        manager.award_contract(bid.id, 1000, START, END)


def test_award_rejected_bid(manager, db, bid):
    manager.set_bid_status(bid.id, "rejected")
    with pytest.raises(BidLocked):
        manager.award_contract(bid.id, 1000, START, END)
    assert db.query(Contract).count() == 0


def test_award_withdrawn_bid(manager, db, bid, vendor):
    manager.withdraw_bid(bid.id, vendor.id)
    with pytest.raises(BidLocked):
        manager.award_contract(bid.id, 1000, START, END)
    assert db.query(Contract).count() == 0


def test_second_award_on_same_rfp(manager, db, published_rfp, bid, competing_bids):
    second, _ = competing_bids
    manager.award_contract(bid.id, 1000, START, END)
    with pytest.raises(RFPAlreadyAwarded):
        manager.award_contract(second.id, 1100, START, END)
    assert db.query(Contract).count() == 1


@pytest.mark.parametrize("value,start,end", [
    (0, START, END),
    (-50, START, END),
    ("abc", START, END),
    (1000, END, START),
    (1000, START, START),
])
def test_invalid_contract_terms(manager, db, published_rfp, bid, value, start, end):
    with pytest.raises(InvalidContractTerms):
        manager.award_contract(bid.id, value, start, end)

    db.expire_all()
    assert db.query(Contract).count() == 0
    assert db.get(Bid, bid.id).status == "pending"
    assert db.get(RFP, published_rfp.id).status == "published"


def test_award_on_cancelled_rfp_rolls_back(manager, db, published_rfp, bid):
    manager.set_rfp_status(published_rfp.id, "cancelled")
    with pytest.raises(InvalidTransition):
        manager.award_contract(bid.id, 1000, START, END)

    db.expire_all()
    assert db.query(Contract).count() == 0
    assert db.query(Notification).count() == 0
    assert db.get(Bid, bid.id).status == "pending"
    assert db.get(RFP, published_rfp.id).status == "cancelled"


def test_concurrent_awards_have_one_winner(manager, session_factory, store, clock, db, published_rfp, bid, competing_bids):
    second, _ = competing_bids
    # This session holds the first bid as pending
    assert bid.status == "pending"

    # Another admin session awards the second bid first
    other_session = session_factory()
    try:
        LifecycleManager(other_session, store, clock=clock).award_contract(second.id, 1100, START, END)
    finally:
        other_session.close()

    with pytest.raises(RFPAlreadyAwarded):
        manager.award_contract(bid.id, 1000, START, END)

    db.expire_all()
    contracts = db.query(Contract).all()
    assert len(contracts) == 1
    assert contracts[0].bid_id == second.id
    assert db.get(Bid, bid.id).status == "rejected"
    assert db.get(Bid, second.id).status == "approved"


def test_existing_contract_row_blocks_award(manager, db, published_rfp, bid, other_vendor, competing_bids):
    second, _ = competing_bids
    # A contract committed for this RFP while its status still reads published
    db.add(Contract(
        rfp_id=published_rfp.id,
        bid_id=second.id,
        vendor_id=other_vendor.id,
        contract_value=Decimal("1100"),
        start_date=START,
        end_date=END,
        status="active",
    ))
    db.commit()

    with pytest.raises(RFPAlreadyAwarded):
        manager.award_contract(bid.id, 1000, START, END)

    db.expire_all()
    assert db.query(Contract).count() == 1
    assert db.query(Contract).filter(Contract.bid_id == bid.id).count() == 0
    assert db.get(Bid, bid.id).status == "pending"
    assert db.get(Bid, second.id).status == "pending"
    assert db.get(RFP, published_rfp.id).status == "published"
    assert db.query(Notification).count() == 0


def test_award_when_rfp_changed_after_lock_read(manager, db, monkeypatch, published_rfp, bid):
    stale = SimpleNamespace(id=published_rfp.id, status="published", title=published_rfp.title)
    db.execute(
        update(RFP).where(RFP.id == published_rfp.id).values(status="awarded")
    )
    db.commit()
    monkeypatch.setattr(manager, "_lock_rfp", lambda rfp_id: stale)

    with pytest.raises(RFPAlreadyAwarded):
        manager.award_contract(bid.id, 1000, START, END)

    db.expire_all()
    assert db.query(Contract).count() == 0
    assert db.get(Bid, bid.id).status == "pending"
    assert db.get(RFP, published_rfp.id).status == "awarded"
    assert db.query(Notification).count() == 0


def test_award_when_rfp_cancelled_after_lock_read(manager, db, monkeypatch, published_rfp, bid):
    stale = SimpleNamespace(id=published_rfp.id, status="published", title=published_rfp.title)
    db.execute(
        update(RFP).where(RFP.id == published_rfp.id).values(status="cancelled")
    )
    db.commit()
    monkeypatch.setattr(manager, "_lock_rfp", lambda rfp_id: stale)

    with pytest.raises(InvalidTransition):
        manager.award_contract(bid.id, 1000, START, END)

    db.expire_all()
    assert db.query(Contract).count() == 0
    assert db.get(Bid, bid.id).status == "pending"


def test_contract_status_transitions(manager, bid):
    contract = manager.award_contract(bid.id, 1000, START, END)

    assert manager.set_contract_status(contract.id, "completed").status == "completed"
    with pytest.raises(InvalidTransition):
        manager.set_contract_status(contract.id, "terminated")
    with pytest.raises(InvalidTransition):
        manager.set_contract_status(contract.id, "active")


def test_contract_can_be_terminated(manager, bid):
    contract = manager.award_contract(bid.id, 1000, START, END)
    assert manager.set_contract_status(contract.id, "terminated").status == "terminated"


def test_missing_contract(manager):
    with pytest.raises(ContractNotFound):
        manager.set_contract_status(uuid.uuid4(), "completed")


def test_rfp_lifecycle_end_to_end(manager, db, admin, vendor, category, clock):
    rfp = manager.create_rfp(
        created_by=admin.id,
        title="Quay wall repair",
        description="Repair of the north quay wall",
        category_id=category.id,
        submission_deadline=clock.now + timedelta(days=3),
    ).record
    assert rfp.status == "draft"

    clock.advance(hours=1)
    rfp = manager.set_rfp_status(rfp.id, "published")
    assert rfp.published_at == clock.now

    clock.advance(hours=1)
    bid = manager.submit_bid(rfp.id, vendor.id, 1000, "Full repair in six weeks").record
    assert bid.status == "pending"

    manager.set_bid_status(bid.id, "under_review")
    manager.set_bid_status(bid.id, "shortlisted")
    contract = manager.award_contract(bid.id, 1000, START, END)

    db.expire_all()
    assert db.get(RFP, rfp.id).status == "awarded"
    assert db.get(Bid, bid.id).status == "approved"
    assert contract.contract_value == Decimal("1000")

    # An awarded RFP can still be cancelled, nothing else
    with pytest.raises(InvalidTransition):
        manager.set_rfp_status(rfp.id, "published")
    assert manager.set_rfp_status(rfp.id, "cancelled").status == "cancelled"
