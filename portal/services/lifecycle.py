"""
Lifecycle Manager - RFP, bid and contract state changes

Every operation takes the acting user's id explicitly and runs against the
session it was built with. Business-rule violations raise the errors in
portal.core.errors; the session is rolled back before they propagate.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, List, Optional, Any
from uuid import UUID
import logging

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.core.config import settings
from portal.core.errors import (
    BidLocked, BidNotFound, CategoryNotFound, ContractNotFound, DocumentNotFound,
    DuplicateBid, InvalidAmount, InvalidContractTerms, InvalidProposal,
    InvalidTransition, RFPAlreadyAwarded, RFPHasBids, RFPNotFound, RFPNotOpen,
)
from portal.db.models import RFP, Bid, BidDocument, Category, Contract, RFPDocument
from portal.services import notification_service as ns
from portal.services.document_store import (
    DocumentStore, DocumentStoreError, bid_document_path, rfp_document_path,
)
from portal.utils.clock import to_naive_utc, utcnow
from portal.utils.status_machine import (
    BidStateMachine, BidStatus, ContractStateMachine, ContractStatus,
    RFPStateMachine, RFPStatus,
)

logger = logging.getLogger(__name__)

# Fields an admin may edit on an RFP after creation
EDITABLE_RFP_FIELDS = (
    "title", "description", "category_id", "estimated_value",
    "submission_deadline", "requirements", "evaluation_criteria",
)
REQUIRED_RFP_FIELDS = ("title", "description", "category_id", "submission_deadline")

_REFERENCE_ATTEMPTS = 3


@dataclass
class UploadedDocument:
    """A file handed over by the caller for attachment"""
    name: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class SubmissionResult:
    """A created record plus the names of attachments that could not be stored"""
    record: Any
    failed_documents: List[str] = field(default_factory=list)


def _values(statuses) -> List[str]:
    return [s.value for s in statuses]


def _to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    # NaN and Infinity are not amounts
    return result if result.is_finite() else None


def _is_constraint_violation(exc: IntegrityError, name: str, columns: str) -> bool:
    # Postgres reports the constraint name, SQLite the column list
    message = str(exc.orig)
    return name in message or columns in message


class LifecycleManager:
    """
    Owns the RFP, bid and contract status machines and the award transaction.

    Usage:
        manager = LifecycleManager(db, document_store)
        result = manager.submit_bid(rfp_id, vendor_id, Decimal("1000"), "Proposal")
    """

    def __init__(
        self,
        db: Session,
        documents: DocumentStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.documents = documents
        self.clock = clock

    # ------------------------
    # RFP authoring
    # ------------------------

    def next_reference_number(self, year: int) -> str:
        prefix = f"{settings.RFP_REFERENCE_PREFIX}-{year}-"
        latest = self.db.query(func.max(RFP.reference_number)).filter(
            RFP.reference_number.like(f"{prefix}%")
        ).scalar()
        sequence = int(latest[len(prefix):]) if latest else 0
        return f"{prefix}{sequence + 1:04d}"

    def create_rfp(
        self,
        created_by: UUID,
        title: str,
        description: str,
        category_id: UUID,
        submission_deadline: datetime,
        estimated_value=None,
        requirements: Optional[str] = None,
        evaluation_criteria: Optional[str] = None,
        publish_now: bool = False,
        documents: Iterable[UploadedDocument] = (),
    ) -> SubmissionResult:
        """
        Create an RFP in 'draft' (or 'published' when publish_now) with a fresh
        reference number, then attach documents best-effort.
        """
        if self.db.get(Category, category_id) is None:
            raise CategoryNotFound()

        value = _to_decimal(estimated_value)
        if estimated_value is not None and (value is None or value < 0):
            raise InvalidAmount("Estimated value must be a non-negative amount")

        now = self.clock()
        rfp = None
        for attempt in range(_REFERENCE_ATTEMPTS):
            rfp = RFP(
                reference_number=self.next_reference_number(now.year),
                title=title,
                description=description,
                category_id=category_id,
                estimated_value=value,
                submission_deadline=to_naive_utc(submission_deadline),
                status=(RFPStatus.PUBLISHED if publish_now else RFPStatus.DRAFT).value,
                published_at=now if publish_now else None,
                requirements=requirements,
                evaluation_criteria=evaluation_criteria,
                created_by=created_by,
            )
            self.db.add(rfp)
            try:
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                if not _is_constraint_violation(e, "reference_number", "rfps.reference_number"):
                    raise
                # Another RFP took this reference number; count again
                logger.warning(f"Reference number {rfp.reference_number} taken, retrying")
                if attempt == _REFERENCE_ATTEMPTS - 1:
                    raise
        self.db.refresh(rfp)
        logger.info(f"Created RFP {rfp.reference_number} ({rfp.status}) by {created_by}")

        failed = self._attach_rfp_documents(rfp, created_by, documents)
        return SubmissionResult(record=rfp, failed_documents=failed)

    def update_rfp(self, rfp_id: UUID, **changes) -> RFP:
        """
        Edit RFP details while it is draft, published or closed.
        The submission deadline is frozen once any bid exists.
        """
        rfp = self._get_rfp(rfp_id, for_update=True)
        if not RFPStateMachine.can_edit(rfp.status):
            self.db.rollback()
            raise InvalidTransition(f"Cannot edit an RFP in '{rfp.status}' status")

        unknown = set(changes) - set(EDITABLE_RFP_FIELDS)
        if unknown:
            self.db.rollback()
            raise ValueError(f"Unknown RFP fields: {sorted(unknown)}")

        if changes.get("category_id") is not None and self.db.get(Category, changes["category_id"]) is None:
            self.db.rollback()
            raise CategoryNotFound()

        if "estimated_value" in changes and changes["estimated_value"] is not None:
            value = _to_decimal(changes["estimated_value"])
            if value is None or value < 0:
                self.db.rollback()
                raise InvalidAmount("Estimated value must be a non-negative amount")
            changes["estimated_value"] = value

        if changes.get("submission_deadline") is not None:
            new_deadline = to_naive_utc(changes["submission_deadline"])
            if new_deadline != rfp.submission_deadline:
                has_bids = self.db.query(Bid.id).filter(Bid.rfp_id == rfp.id).first() is not None
                if has_bids:
                    self.db.rollback()
                    raise InvalidTransition("Submission deadline cannot change once bids exist")
            changes["submission_deadline"] = new_deadline

        for name, value in changes.items():
            if value is None and name in REQUIRED_RFP_FIELDS:
                continue
            setattr(rfp, name, value)

        self.db.commit()
        self.db.refresh(rfp)
        return rfp

    def add_rfp_documents(
        self, rfp_id: UUID, uploaded_by: UUID, documents: Iterable[UploadedDocument]
    ) -> SubmissionResult:
        rfp = self._get_rfp(rfp_id)
        failed = self._attach_rfp_documents(rfp, uploaded_by, documents)
        self.db.refresh(rfp)
        return SubmissionResult(record=rfp, failed_documents=failed)

    def remove_rfp_document(self, document_id: UUID) -> None:
        document = self.db.get(RFPDocument, document_id)
        if document is None:
            raise DocumentNotFound()
        try:
            self.documents.delete(document.file_path)
        except DocumentStoreError as e:
            logger.warning(f"Could not delete blob {document.file_path}: {e}")
        self.db.delete(document)
        self.db.commit()

    def delete_rfp(self, rfp_id: UUID) -> None:
        """
        Delete an RFP that never received a bid, with its documents.

        Any bid, whatever its status, keeps the RFP; contracts always hang
        off a bid so they are covered by the same check. Blobs are removed
        after the rows are gone and a failed blob delete is only logged.
        """
        rfp = self._get_rfp(rfp_id, for_update=True)
        bid_count = self.db.query(Bid).filter(Bid.rfp_id == rfp_id).count()
        if bid_count > 0:
            self.db.rollback()
            raise RFPHasBids(f"Cannot delete RFP with {bid_count} bid(s)")

        paths = [document.file_path for document in rfp.documents]
        self.db.delete(rfp)
        self.db.commit()
        logger.info(f"Deleted RFP {rfp_id} with {len(paths)} document(s)")

        for path in paths:
            try:
                self.documents.delete(path)
            except DocumentStoreError as e:
                logger.warning(f"Could not delete blob {path}: {e}")

    def create_category(self, name: str, description: Optional[str] = None) -> Category:
        category = Category(name=name.strip(), description=description)
        self.db.add(category)
        self.db.commit()
        self.db.refresh(category)
        return category

    # ------------------------
    # RFP status
    # ------------------------

    def set_rfp_status(self, rfp_id: UUID, new_status: str) -> RFP:
        """
        Move an RFP along its state machine. 'awarded' is only reachable
        through award_contract.
        """
        if new_status == RFPStatus.AWARDED:
            raise InvalidTransition("RFPs are awarded through the contract award workflow")
        try:
            target = RFPStatus(new_status)
        except ValueError:
            raise InvalidTransition(f"Unknown RFP status '{new_status}'")

        rfp = self._get_rfp(rfp_id, for_update=True)
        old_status = rfp.status
        if old_status == target.value:
            self.db.rollback()
            return rfp

        if not RFPStateMachine.can_transition(old_status, target.value):
            allowed = RFPStateMachine.get_allowed_transitions(old_status)
            self.db.rollback()
            raise InvalidTransition(
                f"Cannot transition from '{old_status}' to '{target.value}'. Allowed: {allowed}"
            )

        now = self.clock()
        values = {"status": target.value, "updated_at": now}
        if target == RFPStatus.PUBLISHED and rfp.published_at is None:
            values["published_at"] = now

        result = self.db.execute(
            update(RFP)
            .where(RFP.id == rfp.id, RFP.status == old_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise InvalidTransition("RFP status changed concurrently, reload and retry")

        self.db.commit()
        self.db.refresh(rfp)
        logger.info(f"RFP {rfp.reference_number}: {old_status} -> {rfp.status}")
        return rfp

    # ------------------------
    # Bids
    # ------------------------

    def submit_bid(
        self,
        rfp_id: UUID,
        vendor_id: UUID,
        amount,
        proposal: str,
        documents: Iterable[UploadedDocument] = (),
    ) -> SubmissionResult:
        """
        Submit a vendor's bid while the RFP is published and before its deadline.

        Attachments are stored after the bid commits; a failed upload is logged
        and reported in failed_documents, the bid stands.
        """
        rfp = self.db.query(RFP).filter(RFP.id == rfp_id).with_for_update(read=True).first()
        now = self.clock()
        if (
            rfp is None
            or not RFPStateMachine.can_receive_bids(rfp.status)
            or now >= rfp.submission_deadline
        ):
            self.db.rollback()
            raise RFPNotOpen()

        if self._find_bid(rfp_id, vendor_id) is not None:
            self.db.rollback()
            raise DuplicateBid()

        value = _to_decimal(amount)
        if value is None or value <= 0:
            self.db.rollback()
            raise InvalidAmount()

        proposal_text = (proposal or "").strip()
        if not proposal_text:
            self.db.rollback()
            raise InvalidProposal()

        bid = Bid(
            rfp_id=rfp_id,
            vendor_id=vendor_id,
            amount=value,
            proposal=proposal_text,
            status=BidStatus.PENDING.value,
            submitted_at=now,
        )
        self.db.add(bid)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if _is_constraint_violation(e, "uq_bids_rfp_vendor", "bids.rfp_id, bids.vendor_id"):
                raise DuplicateBid()
            raise
        self.db.refresh(bid)
        logger.info(f"Bid {bid.id} submitted by vendor {vendor_id} for RFP {rfp.reference_number}")

        failed = []
        stored = 0
        for document in documents:
            path = bid_document_path(vendor_id, bid.id, document.name)
            if not self._store_blob(path, document):
                failed.append(document.name)
                continue
            self.db.add(BidDocument(
                bid_id=bid.id,
                name=document.name,
                file_path=path,
                file_size=len(document.content),
                file_type=document.content_type,
            ))
            stored += 1
        if stored:
            self.db.commit()
            self.db.refresh(bid)

        return SubmissionResult(record=bid, failed_documents=failed)

    def set_bid_status(self, bid_id: UUID, new_status: str, admin_notes: Optional[str] = None) -> Bid:
        """
        Admin review transition. 'approved' is reserved for award_contract and
        an approved bid is locked. Status and notes are written together.
        """
        if not BidStateMachine.is_admin_settable(new_status):
            raise InvalidTransition(
                f"Bid status '{new_status}' cannot be set directly. "
                f"Allowed: {_values(BidStateMachine.ADMIN_SETTABLE)}"
            )

        bid = self._get_bid(bid_id, for_update=True)
        if BidStateMachine.is_locked(bid.status):
            self.db.rollback()
            raise BidLocked("Bid has been approved and can no longer change status")

        if BidStateMachine.is_open(new_status) and self._has_approved_sibling(bid):
            self.db.rollback()
            raise BidLocked("Another bid on this RFP has been approved")

        old_status = bid.status
        bid.status = BidStatus(new_status).value
        bid.admin_notes = admin_notes
        self.db.commit()
        self.db.refresh(bid)
        logger.info(f"Bid {bid.id}: {old_status} -> {bid.status}")
        return bid

    def save_admin_notes(self, bid_id: UUID, admin_notes: Optional[str]) -> Bid:
        bid = self._get_bid(bid_id)
        bid.admin_notes = admin_notes or None
        self.db.commit()
        self.db.refresh(bid)
        return bid

    def withdraw_bid(self, bid_id: UUID, vendor_id: UUID) -> Bid:
        """Vendor withdraws their own bid while the RFP is still published"""
        bid = self.db.query(Bid).filter(
            Bid.id == bid_id, Bid.vendor_id == vendor_id
        ).with_for_update().first()
        if bid is None:
            self.db.rollback()
            raise BidNotFound()

        if not BidStateMachine.can_withdraw(bid.status):
            self.db.rollback()
            raise BidLocked(f"Cannot withdraw a bid that is '{bid.status}'")

        if not RFPStateMachine.can_receive_bids(bid.rfp.status):
            self.db.rollback()
            raise RFPNotOpen(f"Cannot withdraw while the RFP is '{bid.rfp.status}'")

        bid.status = BidStatus.WITHDRAWN.value
        self.db.commit()
        self.db.refresh(bid)
        logger.info(f"Bid {bid.id} withdrawn by vendor {vendor_id}")
        return bid

    # ------------------------
    # Award
    # ------------------------

    def award_contract(
        self,
        bid_id: UUID,
        contract_value,
        start_date: date,
        end_date: date,
        terms: Optional[str] = None,
    ) -> Contract:
        """
        Award the RFP to one bid in a single transaction:

        1. lock the RFP, then lock and check the bid
        2. validate contract terms
        3. insert the contract
        4. approve the bid
        5. move the RFP to 'awarded' only if it is still published or closed
        6. reject every other bid still pending, under review or shortlisted
        7. notify the winning vendor

        Any failure rolls back every step, so a contract never exists without
        its approved bid and awarded RFP.
        """
        bid = self.db.query(Bid).filter(Bid.id == bid_id).first()
        if bid is None:
            self.db.rollback()
            raise BidNotFound()
        if BidStateMachine.is_locked(bid.status):
            self.db.rollback()
            raise BidLocked("Bid has already been approved")

        # Lock the RFP before the bid so concurrent awards on one RFP queue
        # up here instead of deadlocking on each other's bid rows.
        rfp_id = bid.rfp_id
        rfp = self._lock_rfp(rfp_id)
        if rfp.status == RFPStatus.AWARDED:
            self.db.rollback()
            logger.warning(f"Lost award race on RFP {rfp_id} for bid {bid_id}")
            raise RFPAlreadyAwarded()

        bid = self.db.query(Bid).filter(Bid.id == bid_id).with_for_update().populate_existing().one()
        if not BidStateMachine.can_award(bid.status):
            self.db.rollback()
            raise BidLocked(f"Cannot award a bid that is '{bid.status}'")

        value = _to_decimal(contract_value)
        if value is None or value <= 0:
            self.db.rollback()
            raise InvalidContractTerms("Contract value must be greater than zero")
        if start_date is None or end_date is None or start_date >= end_date:
            self.db.rollback()
            raise InvalidContractTerms("Contract start date must be before its end date")

        rfp_title = rfp.title
        now = self.clock()
        try:
            contract = Contract(
                rfp_id=rfp_id,
                bid_id=bid.id,
                vendor_id=bid.vendor_id,
                contract_value=value,
                start_date=start_date,
                end_date=end_date,
                terms=terms or None,
                status=ContractStatus.ACTIVE.value,
            )
            self.db.add(contract)
            self.db.flush()

            bid.status = BidStatus.APPROVED.value

            result = self.db.execute(
                update(RFP)
                .where(RFP.id == rfp_id, RFP.status.in_(_values(RFPStateMachine.AWARDABLE)))
                .values(status=RFPStatus.AWARDED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = self.db.query(RFP.status).filter(RFP.id == rfp_id).scalar()
                if current == RFPStatus.AWARDED:
                    raise RFPAlreadyAwarded()
                raise InvalidTransition(f"Cannot award an RFP in '{current}' status")

            self.db.execute(
                update(Bid)
                .where(
                    Bid.rfp_id == rfp_id,
                    Bid.id != bid.id,
                    Bid.status.in_(_values(BidStateMachine.OPEN)),
                )
                .values(status=BidStatus.REJECTED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )

            ns.append(
                self.db,
                user_id=bid.vendor_id,
                title="Contract Awarded",
                message=(
                    f'Congratulations! Your bid for "{rfp_title}" has been approved '
                    f"and you have been awarded the contract."
                ),
                notification_type=ns.NotificationType.CONTRACT_AWARD,
                link="/bids",
            )

            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if _is_constraint_violation(e, "uq_contracts_rfp", "contracts.rfp_id"):
                logger.warning(f"Lost award race on RFP {rfp_id} for bid {bid_id}")
                raise RFPAlreadyAwarded()
            raise
        except RFPAlreadyAwarded:
            self.db.rollback()
            logger.warning(f"Lost award race on RFP {rfp_id} for bid {bid_id}")
            raise
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(contract)
        logger.info(f"RFP {rfp_id} awarded to bid {bid_id}, contract {contract.id}")
        return contract

    def set_contract_status(self, contract_id: UUID, new_status: str) -> Contract:
        contract = self.db.query(Contract).filter(Contract.id == contract_id).with_for_update().first()
        if contract is None:
            self.db.rollback()
            raise ContractNotFound()
        if not ContractStateMachine.can_transition(contract.status, new_status):
            self.db.rollback()
            raise InvalidTransition(
                f"Cannot transition contract from '{contract.status}' to '{new_status}'"
            )
        contract.status = ContractStatus(new_status).value
        self.db.commit()
        self.db.refresh(contract)
        logger.info(f"Contract {contract.id} -> {contract.status}")
        return contract

    # ------------------------
    # Helpers
    # ------------------------

    def _get_rfp(self, rfp_id: UUID, for_update: bool = False) -> RFP:
        query = self.db.query(RFP).filter(RFP.id == rfp_id)
        if for_update:
            query = query.with_for_update()
        rfp = query.first()
        if rfp is None:
            self.db.rollback()
            raise RFPNotFound()
        return rfp

    def _lock_rfp(self, rfp_id: UUID) -> RFP:
        # Re-read under the lock; the identity map may hold a stale status
        return self.db.query(RFP).filter(RFP.id == rfp_id).with_for_update().populate_existing().one()

    def _get_bid(self, bid_id: UUID, for_update: bool = False) -> Bid:
        query = self.db.query(Bid).filter(Bid.id == bid_id)
        if for_update:
            query = query.with_for_update()
        bid = query.first()
        if bid is None:
            self.db.rollback()
            raise BidNotFound()
        return bid

    def _find_bid(self, rfp_id: UUID, vendor_id: UUID) -> Optional[Bid]:
        return self.db.query(Bid).filter(
            Bid.rfp_id == rfp_id, Bid.vendor_id == vendor_id
        ).first()

    def _has_approved_sibling(self, bid: Bid) -> bool:
        return self.db.query(Bid.id).filter(
            Bid.rfp_id == bid.rfp_id,
            Bid.id != bid.id,
            Bid.status == BidStatus.APPROVED.value,
        ).first() is not None

    def _store_blob(self, path: str, document: UploadedDocument) -> bool:
        if len(document.content) > settings.MAX_UPLOAD_SIZE:
            logger.warning(
                f"Skipping {document.name}: {len(document.content)} bytes exceeds "
                f"{settings.MAX_UPLOAD_SIZE}"
            )
            return False
        try:
            self.documents.put(path, document.content)
        except DocumentStoreError as e:
            logger.warning(f"Upload of {document.name} failed: {e}")
            return False
        return True

    def _attach_rfp_documents(self, rfp: RFP, uploaded_by: UUID, documents) -> List[str]:
        failed = []
        stored = 0
        for document in documents:
            path = rfp_document_path(rfp.id, document.name)
            if not self._store_blob(path, document):
                failed.append(document.name)
                continue
            self.db.add(RFPDocument(
                rfp_id=rfp.id,
                name=document.name,
                file_path=path,
                file_size=len(document.content),
                file_type=document.content_type,
                uploaded_by=uploaded_by,
            ))
            stored += 1
        if stored:
            self.db.commit()
        return failed
