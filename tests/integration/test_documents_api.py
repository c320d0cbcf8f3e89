# tests/integration/test_documents_api.py
from __future__ import annotations

import httpx

from conftest import alpha_png_bytes, auth, jpeg_bytes, make_token, pdf_bytes

USER_A = "user-a"
USER_B = "user-b"


def upload(client, data: bytes, name="id.jpg", content_type="image/jpeg", document_type="ID_CARD", user=USER_A):
    return client.post(
        "/documents/upload",
        files={"file": (name, data, content_type)},
        data={"documentType": document_type},
        headers=auth(user),
    )


def wait_for_verification(client, timeout=10.0):
    assert client.app.state.container.pool.wait(timeout)


# ── Envelope / auth ──

def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    j = r.json()
    assert j["status"] == "ok"
    assert j["database"] == "SQLite"
    assert j["verificationMode"] == "mock"
    assert j["inFlightVerifications"] == 0


def test_missing_token_is_401_with_envelope(client):
    r = client.get("/documents")
    assert r.status_code == 401
    j = r.json()
    assert j["success"] is False
    assert j["error"] == "TOKEN_REQUIRED"
    assert "timestamp" in j


def test_expired_and_foreign_tokens_are_rejected(client):
    expired = make_token(USER_A, expires_in=-10)
    r = client.get("/documents", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401
    assert r.json()["error"] == "TOKEN_EXPIRED"

    forged = make_token(USER_A, secret="another-secret")
    r = client.get("/documents", headers={"Authorization": f"Bearer {forged}"})
    assert r.status_code == 401
    assert r.json()["error"] == "INVALID_TOKEN"


# ── Upload ──

def test_upload_jpeg_creates_uploaded_document(client, storage):
    data = jpeg_bytes()
    assert data[:4] == b"\xff\xd8\xff\xe0"

    r = upload(client, data)
    assert r.status_code == 201
    j = r.json()
    assert j["success"] is True
    doc = j["data"]
    assert doc["status"] == "UPLOADED"
    assert doc["documentType"] == "ID_CARD"
    assert doc["mimeType"] == "image/jpeg"
    steps = doc["processingMetadata"]["stepsApplied"]
    assert "auto_rotate" in steps
    assert "jpeg_conversion" in steps or "png_optimization" in steps
    assert len(doc["processingMetadata"]["checksum"]) == 64
    assert doc["processingMetadata"]["originalSize"] == len(data)

    (key,) = storage.objects.keys()
    assert key.startswith(f"{USER_A}/ID_CARD/")
    assert key.endswith(".jpg")
    _, content_type, metadata = storage.objects[key]
    assert content_type == "image/jpeg"
    assert metadata["original-name"] == "id.jpg"


def test_upload_png_with_alpha_stays_png(client, storage):
    r = upload(client, alpha_png_bytes(), name="selfie.png", content_type="image/png", document_type="PASSPORT")
    assert r.status_code == 201
    doc = r.json()["data"]
    assert doc["mimeType"] == "image/png"
    assert "png_optimization" in doc["processingMetadata"]["stepsApplied"]
    (key,) = storage.objects.keys()
    assert key.endswith(".png")


def test_upload_executable_signature_is_security_rejection(client, storage):
    data = b"MZ\x90\x00" + b"\x00" * 2044
    r = upload(client, data, name="scan.jpg", content_type="image/jpeg")
    assert r.status_code == 400
    j = r.json()
    assert j["success"] is False
    assert j["error"] == "FILE_SECURITY_VIOLATION"
    assert storage.put_calls == 0

    listing = client.get("/documents", headers=auth(USER_A)).json()
    assert listing["data"]["total"] == 0


def test_upload_pdf_with_javascript_is_rejected(client, storage):
    data = pdf_bytes(b"3 0 obj\n<< /S /JavaScript /JS (app.alert(1)) >>\nendobj\n")
    r = upload(client, data, name="statement.pdf", content_type="application/pdf", document_type="BANK_STATEMENT")
    assert r.status_code == 400
    assert r.json()["error"] == "FILE_SECURITY_VIOLATION"
    assert storage.objects == {}


def test_declared_type_is_not_trusted(client):
    r = upload(client, b"just some text pretending to be an image" * 10, content_type="image/jpeg")
    assert r.status_code == 400
    assert r.json()["error"] == "FILE_TYPE_NOT_ALLOWED"


def test_oversized_upload_is_size_rejection(make_client):
    client = make_client(max_file_size=1024)
    r = upload(client, jpeg_bytes(200, 200))
    assert r.status_code == 400
    assert r.json()["error"] == "FILE_SIZE_INVALID"


def test_oversized_body_is_read_only_up_to_the_limit(make_client, storage):
    client = make_client(max_file_size=1024)
    upload_use_case = client.app.state.container.upload
    received = []

    class RecordingUpload:
        def execute(self, owner_id, data, *args):
            received.append(len(data))
            return upload_use_case.execute(owner_id, data, *args)

    client.app.state.container.upload = RecordingUpload()
    r = upload(client, b"\xff\xd8\xff\xe0" + b"\x00" * (256 * 1024))

    assert r.status_code == 400
    assert r.json()["error"] == "FILE_SIZE_INVALID"
    assert received == [1025]
    assert storage.put_calls == 0


def test_upload_without_file_or_type(client):
    r = client.post("/documents/upload", data={"documentType": "ID_CARD"}, headers=auth(USER_A))
    assert r.status_code == 400
    assert r.json()["error"] == "NO_FILE"

    r = client.post(
        "/documents/upload",
        files={"file": ("id.jpg", jpeg_bytes(), "image/jpeg")},
        data={"documentType": "LIBRARY_CARD"},
        headers=auth(USER_A),
    )
    assert r.status_code == 400
    assert r.json()["error"] == "VALIDATION_ERROR"


def test_storage_outage_fails_upload_without_record(client, storage):
    storage.fail_writes = True
    r = upload(client, jpeg_bytes())
    assert r.status_code == 502
    assert r.json()["error"] == "STORAGE_ERROR"
    assert client.get("/documents", headers=auth(USER_A)).json()["data"]["total"] == 0


# ── Verification ──

def test_mock_verification_runs_after_upload(make_client):
    client = make_client(enable_document_verification=True)
    doc_id = upload(client, jpeg_bytes()).json()["data"]["id"]
    wait_for_verification(client)

    doc = client.get(f"/documents/{doc_id}", headers=auth(USER_A)).json()["data"]
    assert doc["status"] == "VERIFIED"
    assert doc["verifiedAt"] is not None
    assert doc["rejectedAt"] is None
    verification = doc["processingMetadata"]["verification"]
    assert verification["tier"] == "mock"
    assert verification["confidence"] == 0.9


def test_unreachable_provider_falls_back_to_basic_checks(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(
        transport=httpx.MockTransport(handler),
        enable_document_verification=True,
        verification_api_url="http://verifier.test",
        verification_api_key="key",
    )
    assert client.get("/health").json()["verificationMode"] == "external"

    doc_id = upload(client, jpeg_bytes()).json()["data"]["id"]
    wait_for_verification(client)

    doc = client.get(f"/documents/{doc_id}", headers=auth(USER_A)).json()["data"]
    assert doc["status"] in ("VERIFIED", "REJECTED")
    assert doc["processingMetadata"]["verification"]["tier"] == "basic"
    assert doc["processingMetadata"]["verification"]["details"]["fallback_from"] == "external"


def test_all_tiers_failing_ends_in_rejected(make_client, storage):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(
        transport=httpx.MockTransport(handler),
        enable_document_verification=True,
        verification_api_url="http://verifier.test",
        verification_api_key="key",
    )
    storage.fail_reads = True
    doc_id = upload(client, jpeg_bytes()).json()["data"]["id"]
    wait_for_verification(client)

    doc = client.get(f"/documents/{doc_id}", headers=auth(USER_A)).json()["data"]
    assert doc["status"] == "REJECTED"
    assert doc["rejectionReason"] == "Verification process failed"
    assert doc["rejectedAt"] is not None


def test_provider_client_error_is_definitive_rejection(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer key"
        return httpx.Response(422, json={"message": "Document is not an identity card"})

    client = make_client(
        transport=httpx.MockTransport(handler),
        enable_document_verification=True,
        verification_api_url="http://verifier.test",
        verification_api_key="key",
    )
    doc_id = upload(client, jpeg_bytes()).json()["data"]["id"]
    wait_for_verification(client)

    doc = client.get(f"/documents/{doc_id}", headers=auth(USER_A)).json()["data"]
    assert doc["status"] == "REJECTED"
    assert doc["rejectionReason"] == "Document is not an identity card"
    assert doc["processingMetadata"]["verification"]["tier"] == "external"


def test_verification_disabled_leaves_document_uploaded(client):
    doc_id = upload(client, jpeg_bytes()).json()["data"]["id"]
    assert client.app.state.container.pool.in_flight() == 0
    doc = client.get(f"/documents/{doc_id}", headers=auth(USER_A)).json()["data"]
    assert doc["status"] == "UPLOADED"


# ── Read / download / delete ──

def test_list_filters_and_ownership(client):
    upload(client, jpeg_bytes(), document_type="ID_CARD")
    upload(client, pdf_bytes(), name="bill.pdf", content_type="application/pdf", document_type="UTILITY_BILL")
    upload(client, jpeg_bytes(), user=USER_B)

    r = client.get("/documents", headers=auth(USER_A))
    assert r.status_code == 200
    assert r.json()["data"]["total"] == 2

    r = client.get("/documents", params={"documentType": "UTILITY_BILL"}, headers=auth(USER_A))
    (doc,) = r.json()["data"]["documents"]
    assert doc["mimeType"] == "application/pdf"
    assert doc["originalName"] == "bill.pdf"

    r = client.get("/documents", params={"status": "VERIFIED"}, headers=auth(USER_A))
    assert r.json()["data"]["total"] == 0

    r = client.get("/documents", params={"status": "LOST"}, headers=auth(USER_A))
    assert r.status_code == 400


def test_get_other_owners_document_is_404(client):
    doc_id = upload(client, jpeg_bytes()).json()["data"]["id"]

    r = client.get(f"/documents/{doc_id}", headers=auth(USER_B))
    assert r.status_code == 404
    assert r.json()["error"] == "DOCUMENT_NOT_FOUND"

    r = client.get(f"/documents/{doc_id}", headers=auth(USER_A))
    assert r.status_code == 200
    assert r.json()["data"]["storageKey"].startswith(f"{USER_A}/")


def test_download_returns_time_bounded_url(client):
    doc_id = upload(client, jpeg_bytes()).json()["data"]["id"]
    r = client.get(f"/documents/{doc_id}/download", headers=auth(USER_A))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["downloadUrl"].startswith("http://storage.test/documents/user-a/")
    assert "expiresAt" in data

    assert client.get(f"/documents/{doc_id}/download", headers=auth(USER_B)).status_code == 404


def test_delete_is_owner_scoped(client, storage):
    doc_id = upload(client, jpeg_bytes()).json()["data"]["id"]
    (key,) = storage.objects.keys()

    r = client.delete(f"/documents/{doc_id}", headers=auth(USER_B))
    assert r.status_code == 404
    assert storage.exists(key)

    r = client.delete(f"/documents/{doc_id}", headers=auth(USER_A))
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert not storage.exists(key)
    assert client.get(f"/documents/{doc_id}", headers=auth(USER_A)).status_code == 404


def test_stats(client):
    upload(client, jpeg_bytes(), document_type="ID_CARD")
    upload(client, jpeg_bytes(), document_type="PASSPORT")
    upload(client, jpeg_bytes(), user=USER_B)

    r = client.get("/documents/stats", headers=auth(USER_A))
    assert r.status_code == 200
    stats = r.json()["data"]
    assert stats["total"] == 2
    assert stats["byStatus"] == {"UPLOADED": 2}
    assert stats["byType"] == {"ID_CARD": 1, "PASSPORT": 1}
    assert stats["recentUploads"] == 2
    assert stats["totalSize"] > 0


# ── Direct upload ──

def test_upload_url_and_confirm(client, storage):
    r = client.post(
        "/documents/upload-url",
        json={"fileName": "passport.pdf", "fileType": "application/pdf", "documentType": "PASSPORT"},
        headers=auth(USER_A),
    )
    assert r.status_code == 200
    ticket = r.json()["data"]
    key = ticket["s3Key"]
    assert key.startswith(f"{USER_A}/PASSPORT/") and key.endswith(".pdf")
    assert ticket["fields"]["Content-Type"] == "application/pdf"

    # the browser uploads straight to storage
    storage.objects[key] = (pdf_bytes(), "application/pdf", {})

    body = {"s3Key": key, "originalName": "passport.pdf", "documentType": "PASSPORT", "size": len(pdf_bytes())}
    r = client.post("/documents/confirm-upload", json=body, headers=auth(USER_A))
    assert r.status_code == 201
    doc = r.json()["data"]
    assert doc["status"] == "UPLOADED"
    assert doc["sizeBytes"] == len(pdf_bytes())
    assert doc["processingMetadata"]["directUpload"] is True

    r = client.post("/documents/confirm-upload", json=body, headers=auth(USER_A))
    assert r.status_code == 400
    assert r.json()["error"] == "UPLOAD_ALREADY_CONFIRMED"


def test_upload_url_rejects_disallowed_type(client):
    r = client.post(
        "/documents/upload-url",
        json={"fileName": "tool.exe", "fileType": "application/x-msdownload", "documentType": "OTHER"},
        headers=auth(USER_A),
    )
    assert r.status_code == 400
    assert r.json()["error"] == "FILE_TYPE_NOT_ALLOWED"


def test_confirm_upload_failures(client, storage):
    body = {"s3Key": f"{USER_A}/ID_CARD/missing.jpg", "originalName": "id.jpg", "documentType": "ID_CARD"}
    r = client.post("/documents/confirm-upload", json=body, headers=auth(USER_A))
    assert r.status_code == 400
    assert r.json()["error"] == "FILE_NOT_FOUND"

    storage.objects[f"{USER_B}/ID_CARD/x.jpg"] = (jpeg_bytes(), "image/jpeg", {})
    body = {"s3Key": f"{USER_B}/ID_CARD/x.jpg", "originalName": "id.jpg", "documentType": "ID_CARD"}
    r = client.post("/documents/confirm-upload", json=body, headers=auth(USER_A))
    assert r.status_code == 400
    assert r.json()["error"] == "INVALID_STORAGE_KEY"

    bad_key = f"{USER_A}/ID_CARD/bad.jpg"
    storage.objects[bad_key] = (b"MZ" + b"\x00" * 500, "image/jpeg", {})
    body = {"s3Key": bad_key, "originalName": "id.jpg", "documentType": "ID_CARD"}
    r = client.post("/documents/confirm-upload", json=body, headers=auth(USER_A))
    assert r.status_code == 400
    assert r.json()["error"] == "FILE_SECURITY_VIOLATION"
    assert not storage.exists(bad_key)


# ── Admin status override ──

def test_status_update_requires_admin(client):
    doc_id = upload(client, jpeg_bytes()).json()["data"]["id"]
    r = client.put(f"/documents/{doc_id}/status", json={"status": "VERIFIED"}, headers=auth(USER_A))
    assert r.status_code == 403
    assert r.json()["error"] == "FORBIDDEN"


def test_admin_status_transitions(client):
    doc_id = upload(client, jpeg_bytes()).json()["data"]["id"]
    admin = auth("reviewer-1", role="admin")

    r = client.put(f"/documents/{doc_id}/status", json={"status": "VERIFIED"}, headers=admin)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["status"] == "VERIFIED"
    assert data["verifiedAt"] is not None

    r = client.put(f"/documents/{doc_id}/status", json={"status": "REJECTED"}, headers=admin)
    assert r.status_code == 400

    r = client.put(
        f"/documents/{doc_id}/status",
        json={"status": "REJECTED", "rejectionReason": "Photo does not match"},
        headers=admin,
    )
    data = r.json()["data"]
    assert data["status"] == "REJECTED"
    assert data["verifiedAt"] is None
    assert data["rejectionReason"] == "Photo does not match"

    r = client.put(f"/documents/{doc_id}/status", json={"status": "ARCHIVED"}, headers=admin)
    assert r.status_code == 400

    r = client.put("/documents/unknown-id/status", json={"status": "VERIFIED"}, headers=admin)
    assert r.status_code == 404
