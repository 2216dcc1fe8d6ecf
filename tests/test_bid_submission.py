from __future__ import annotations

from decimal import Decimal
import uuid

import pytest

from portal.core.errors import (
    BidLocked, BidNotFound, DuplicateBid, InvalidAmount, InvalidProposal, RFPNotOpen,
)
from portal.db.models import Bid, BidDocument
from portal.services.lifecycle import UploadedDocument


def test_submit_bid_creates_pending_bid(manager, published_rfp, vendor, clock):
    result = manager.submit_bid(published_rfp.id, vendor.id, "1250.50", "  Two dredgers, 10 days  ")
    bid = result.record

    assert result.failed_documents == []
    assert bid.status == "pending"
    assert bid.amount == Decimal("1250.50")
    assert bid.proposal == "Two dredgers, 10 days"
    assert bid.submitted_at == clock.now
    assert bid.admin_notes is None


def test_bid_documents_are_stored_under_vendor_and_bid(manager, published_rfp, vendor, db, store):
    result = manager.submit_bid(
        published_rfp.id,
        vendor.id,
        Decimal("900"),
        "Proposal with attachments",
        documents=[
            UploadedDocument("method.pdf", b"method statement", "application/pdf"),
            UploadedDocument("broken-scan.png", b"\x89PNG", "image/png"),
        ],
    )
    bid = result.record

    # The bid stands even though one upload failed
    assert result.failed_documents == ["broken-scan.png"]
    assert db.query(Bid).count() == 1

    documents = db.query(BidDocument).filter(BidDocument.bid_id == bid.id).all()
    assert len(documents) == 1
    assert documents[0].file_path.startswith(f"{vendor.id}/{bid.id}/")
    assert documents[0].file_path.endswith("-method.pdf")
    assert store.get(documents[0].file_path) == b"method statement"


def test_oversized_document_is_reported_not_stored(manager, published_rfp, vendor, db, monkeypatch):
    from portal.core.config import settings
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 4)

    result = manager.submit_bid(
        published_rfp.id, vendor.id, 100, "Small bid",
        documents=[UploadedDocument("large.bin", b"0123456789")],
    )
    assert result.failed_documents == ["large.bin"]
    assert db.query(BidDocument).count() == 0


def test_draft_rfp_is_not_open(manager, draft_rfp, vendor):
    with pytest.raises(RFPNotOpen):
        manager.submit_bid(draft_rfp.id, vendor.id, 100, "Too early")


def test_closed_rfp_is_not_open(manager, published_rfp, vendor):
    manager.set_rfp_status(published_rfp.id, "closed")
    with pytest.raises(RFPNotOpen):
        manager.submit_bid(published_rfp.id, vendor.id, 100, "Too late")


def test_missing_rfp_is_not_open(manager, vendor):
    with pytest.raises(RFPNotOpen):
        manager.submit_bid(uuid.uuid4(), vendor.id, 100, "Nowhere")


def test_deadline_passed_is_not_open(manager, published_rfp, vendor, clock, db):
    clock.advance(days=7, milliseconds=1)
    with pytest.raises(RFPNotOpen):
        manager.submit_bid(published_rfp.id, vendor.id, 100, "Just missed it")
    assert db.query(Bid).count() == 0


def test_bid_at_exact_deadline_is_refused(manager, published_rfp, vendor, clock):
    clock.advance(days=7)
    with pytest.raises(RFPNotOpen):
        manager.submit_bid(published_rfp.id, vendor.id, 100, "On the stroke")


def test_duplicate_bid_is_refused(manager, published_rfp, vendor, bid, db):
    with pytest.raises(DuplicateBid):
        manager.submit_bid(published_rfp.id, vendor.id, 2000, "Second try")
    assert db.query(Bid).count() == 1


def test_duplicate_bid_caught_by_unique_constraint(manager, published_rfp, vendor, bid, db, monkeypatch):
    # Simulate a concurrent submission that slipped past the lookup
    monkeypatch.setattr(manager, "_find_bid", lambda rfp_id, vendor_id: None)
    with pytest.raises(DuplicateBid):
        manager.submit_bid(published_rfp.id, vendor.id, 2000, "Racing")
    assert db.query(Bid).count() == 1


def test_other_vendors_may_bid(manager, published_rfp, bid, other_vendor, db):
    manager.submit_bid(published_rfp.id, other_vendor.id, 1100, "Competing offer")
    assert db.query(Bid).count() == 2


@pytest.mark.parametrize("amount", [0, -10, "abc", None])
def test_invalid_amount(manager, published_rfp, vendor, amount):
    with pytest.raises(InvalidAmount):
        manager.submit_bid(published_rfp.id, vendor.id, amount, "Proposal")


@pytest.mark.parametrize("proposal", ["", "   \n\t", None])
def test_blank_proposal(manager, published_rfp, vendor, proposal):
    with pytest.raises(InvalidProposal):
        manager.submit_bid(published_rfp.id, vendor.id, 100, proposal)


def test_closed_rfp_wins_over_bad_amount(manager, draft_rfp, vendor):
    with pytest.raises(RFPNotOpen):
        manager.submit_bid(draft_rfp.id, vendor.id, -1, "")


def test_withdraw_bid(manager, bid, vendor):
    withdrawn = manager.withdraw_bid(bid.id, vendor.id)
    assert withdrawn.status == "withdrawn"

    with pytest.raises(BidLocked):
        manager.withdraw_bid(bid.id, vendor.id)


def test_withdraw_someone_elses_bid(manager, bid, other_vendor):
    with pytest.raises(BidNotFound):
        manager.withdraw_bid(bid.id, other_vendor.id)


def test_withdraw_after_close_is_refused(manager, published_rfp, bid, vendor):
    manager.set_rfp_status(published_rfp.id, "closed")
    with pytest.raises(RFPNotOpen):
        manager.withdraw_bid(bid.id, vendor.id)
