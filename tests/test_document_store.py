from __future__ import annotations

import time
import uuid

import pytest

from portal.services.document_store import (
    DocumentStoreError, LocalDocumentStore, bid_document_path, rfp_document_path, safe_filename,
)


@pytest.fixture
def local_store(tmp_path):
    return LocalDocumentStore(str(tmp_path / "docs"))


def test_put_get_delete(local_store):
    local_store.put("a/b/file.txt", b"hello")
    assert local_store.get("a/b/file.txt") == b"hello"

    local_store.delete("a/b/file.txt")
    with pytest.raises(DocumentStoreError):
        local_store.get("a/b/file.txt")


def test_paths_outside_root_are_refused(local_store):
    with pytest.raises(DocumentStoreError):
        local_store.put("../escape.txt", b"nope")
    with pytest.raises(DocumentStoreError):
        local_store.get("/etc/passwd")


def test_deleting_missing_file_is_quiet(local_store):
    local_store.delete("never/written.txt")


def test_bid_document_path_layout():
    vendor_id, bid_id = uuid.uuid4(), uuid.uuid4()
    vendor_part, bid_part, name = bid_document_path(vendor_id, bid_id, "../../offer.pdf").split("/")
    assert vendor_part == str(vendor_id)
    assert bid_part == str(bid_id)
    timestamp, token, filename = name.split("-", 2)
    assert timestamp.isdigit()
    assert len(token) == 8
    assert filename == "offer.pdf"


def test_same_name_same_millisecond_gets_distinct_paths(monkeypatch):
    monkeypatch.setattr(time, "time", lambda: 1717243200.0)
    vendor_id, bid_id, rfp_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

    assert bid_document_path(vendor_id, bid_id, "offer.pdf") != bid_document_path(vendor_id, bid_id, "offer.pdf")
    assert rfp_document_path(rfp_id, "scope.pdf") != rfp_document_path(rfp_id, "scope.pdf")


def test_rfp_document_path_layout():
    rfp_id = uuid.uuid4()
    assert rfp_document_path(rfp_id, "scope.pdf").startswith(f"{rfp_id}/")


def test_safe_filename():
    assert safe_filename("dir/sub/name.pdf") == "name.pdf"
    assert safe_filename("") == "document"
    assert safe_filename(None) == "document"
