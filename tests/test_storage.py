"""
Tests: tenant blob storage.

Categories:
    1. Key scoping and path rules
    2. Upload / download / list / remove
    3. Quota and usage accounting
    4. Signed download links
"""

import time

import pytest

from joinery.core.exceptions import (
    DuplicateKeyError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from joinery.models.auth import Organization
from joinery.services.storage_service import BlobStore, LocalBlobStore

BUCKET = "project-documents"


@pytest.fixture()
def storage(services):
    return services.storage


# ── 1. Path rules ────────────────────────────────────────────────────────


class TestPaths:
    def test_relative_path_is_prefixed_with_tenant(self, storage, tenant_a):
        assert storage.scoped_key(tenant_a, "12/drawing.pdf") == f"{tenant_a}/12/drawing.pdf"

    @pytest.mark.parametrize("path", ["../etc/passwd", "a/../../b", "/abs/file", "a\\b", "./x"])
    def test_traversal_rejected(self, storage, tenant_a, path):
        with pytest.raises(ForbiddenError):
            storage.scoped_key(tenant_a, path)

    def test_empty_path_rejected(self, storage, tenant_a):
        with pytest.raises(ValidationError):
            storage.scoped_key(tenant_a, "")

    def test_owned_key_must_start_with_tenant(self, storage, tenant_a, tenant_b):
        assert storage.owned_key(tenant_a, f"{tenant_a}/x.pdf") == f"{tenant_a}/x.pdf"
        with pytest.raises(ForbiddenError):
            storage.owned_key(tenant_a, f"{tenant_b}/x.pdf")
        with pytest.raises(ForbiddenError):
            storage.owned_key(tenant_a, str(tenant_a))

    def test_unknown_bucket_forbidden(self, storage, tenant_a):
        with pytest.raises(ForbiddenError):
            storage.upload(tenant_a, "secrets", "x.txt", b"x")


# ── 2. Object operations ─────────────────────────────────────────────────


class TestObjects:
    def test_backend_interface_keeps_builtin_list(self, tmp_path):
        # BlobStore defines a method named list; its annotations must not resolve against it.
        assert BlobStore.delete.__annotations__["return"] == "list[str]"
        assert LocalBlobStore(tmp_path).list(BUCKET, "missing") == []

    def test_upload_then_download(self, storage, tenant_a):
        stored = storage.upload(tenant_a, BUCKET, "7/survey.pdf", b"%PDF-1.4 body")
        assert stored == {"bucket": BUCKET, "path": f"{tenant_a}/7/survey.pdf",
                          "size": 13, "content_type": "application/pdf"}

        data, content_type = storage.download(tenant_a, BUCKET, stored["path"])
        assert data == b"%PDF-1.4 body"
        assert content_type == "application/pdf"

    def test_explicit_content_type_kept(self, storage, tenant_a):
        stored = storage.upload(tenant_a, BUCKET, "notes", b"hi", content_type="text/plain")
        assert storage.download(tenant_a, BUCKET, stored["path"])[1] == "text/plain"

    def test_other_tenant_cannot_download(self, storage, tenant_a, tenant_b):
        stored = storage.upload(tenant_a, BUCKET, "secret.pdf", b"x")
        with pytest.raises(ForbiddenError):
            storage.download(tenant_b, BUCKET, stored["path"])

    def test_existing_object_needs_upsert(self, storage, tenant_a):
        storage.upload(tenant_a, BUCKET, "a.txt", b"one")
        with pytest.raises(DuplicateKeyError):
            storage.upload(tenant_a, BUCKET, "a.txt", b"two")
        storage.upload(tenant_a, BUCKET, "a.txt", b"three", upsert=True)
        assert storage.download(tenant_a, BUCKET, f"{tenant_a}/a.txt")[0] == b"three"

    def test_missing_object_not_found(self, storage, tenant_a):
        with pytest.raises(NotFoundError):
            storage.download(tenant_a, BUCKET, f"{tenant_a}/nothing.pdf")

    def test_list_only_sees_own_prefix(self, storage, tenant_a, tenant_b):
        storage.upload(tenant_a, BUCKET, "5/a.pdf", b"a")
        storage.upload(tenant_a, BUCKET, "5/b.pdf", b"bb")
        storage.upload(tenant_b, BUCKET, "5/c.pdf", b"c")

        assert [e["name"] for e in storage.list(tenant_a, BUCKET, "5")] == ["a.pdf", "b.pdf"]
        root = storage.list(tenant_a, BUCKET)
        assert [(e["name"], e["is_folder"]) for e in root] == [("5", True)]
        assert storage.list(tenant_b, BUCKET, "missing") == []

    def test_remove(self, storage, tenant_a):
        storage.upload(tenant_a, BUCKET, "a.pdf", b"a")
        removed = storage.remove(tenant_a, BUCKET, ["a.pdf", "never-there.pdf"])
        assert removed == [f"{tenant_a}/a.pdf"]
        with pytest.raises(NotFoundError):
            storage.download(tenant_a, BUCKET, f"{tenant_a}/a.pdf")

    def test_remove_requires_list(self, storage, tenant_a):
        with pytest.raises(ValidationError):
            storage.remove(tenant_a, BUCKET, [])


# ── 3. Quota ─────────────────────────────────────────────────────────────


class TestQuota:
    def test_usage_tracks_uploads_and_removals(self, storage, store, tenant_a):
        storage.upload(tenant_a, BUCKET, "a.bin", b"x" * 1024)
        storage.upload(tenant_a, "company-assets", "logo.png", b"y" * 512)
        org = store.select(Organization, [Organization.id == tenant_a])[0]
        assert org["current_storage_bytes"] == 1536

        storage.remove(tenant_a, BUCKET, ["a.bin"])
        org = store.select(Organization, [Organization.id == tenant_a])[0]
        assert org["current_storage_bytes"] == 512

    def test_usage_report(self, storage, store, tenant_a):
        store.update(Organization, [Organization.id == tenant_a],
                     {"max_storage_mb": 10, "current_storage_bytes": 5 * 1024 * 1024})
        usage = storage.usage(tenant_a)
        assert usage["current_mb"] == 5.0
        assert usage["max_mb"] == 10
        assert usage["remaining_mb"] == 5.0
        assert usage["percent_used"] == 50

    def test_upload_over_quota_is_forbidden(self, storage, store, tenant_a):
        store.update(Organization, [Organization.id == tenant_a], {"max_storage_mb": 1})
        storage.upload(tenant_a, BUCKET, "big.bin", b"x" * (900 * 1024))
        with pytest.raises(ForbiddenError) as exc:
            storage.upload(tenant_a, BUCKET, "more.bin", b"x" * (200 * 1024))
        assert "Storage limit exceeded" in exc.value.message

    def test_upsert_counts_only_the_growth(self, storage, store, tenant_a):
        store.update(Organization, [Organization.id == tenant_a], {"max_storage_mb": 1})
        storage.upload(tenant_a, BUCKET, "big.bin", b"x" * (900 * 1024))
        storage.upload(tenant_a, BUCKET, "big.bin", b"y" * (1000 * 1024), upsert=True)

    def test_quota_is_per_tenant(self, storage, store, tenant_a, tenant_b):
        store.update(Organization, [Organization.id == tenant_a], {"max_storage_mb": 1})
        storage.upload(tenant_a, BUCKET, "big.bin", b"x" * (1000 * 1024))
        storage.upload(tenant_b, BUCKET, "big.bin", b"x" * (1000 * 1024))


# ── 4. Signed links ──────────────────────────────────────────────────────


class TestSignedUrls:
    def test_sign_and_open(self, storage, tenant_a):
        stored = storage.upload(tenant_a, BUCKET, "q.pdf", b"quote")
        signed = storage.sign_url(tenant_a, BUCKET, stored["path"], expires_in=60)

        assert signed["signedUrl"] == f"/api/storage/signed/{signed['token']}"
        assert signed["expiresIn"] == 60
        assert storage.open_signed(signed["token"]) == (b"quote", "application/pdf")

    def test_cannot_sign_other_tenants_file(self, storage, tenant_a, tenant_b):
        stored = storage.upload(tenant_a, BUCKET, "q.pdf", b"quote")
        with pytest.raises(ForbiddenError):
            storage.sign_url(tenant_b, BUCKET, stored["path"])

    def test_cannot_sign_missing_file(self, storage, tenant_a):
        with pytest.raises(NotFoundError):
            storage.sign_url(tenant_a, BUCKET, f"{tenant_a}/ghost.pdf")

    @pytest.mark.parametrize("expires_in", [-5, 8 * 24 * 3600])
    def test_expiry_bounds(self, storage, tenant_a, expires_in):
        stored = storage.upload(tenant_a, BUCKET, "q.pdf", b"quote")
        with pytest.raises(ValidationError):
            storage.sign_url(tenant_a, BUCKET, stored["path"], expires_in=expires_in)

    def test_tampered_token_is_invalid(self, storage, tenant_a):
        stored = storage.upload(tenant_a, BUCKET, "q.pdf", b"quote")
        token = storage.sign_url(tenant_a, BUCKET, stored["path"])["token"]
        with pytest.raises(ForbiddenError) as exc:
            storage.open_signed(token[:-2] + ("AA" if not token.endswith("AA") else "BB"))
        assert exc.value.message == "Invalid link"

    def test_expired_token(self, storage, tenant_a, monkeypatch):
        stored = storage.upload(tenant_a, BUCKET, "q.pdf", b"quote")
        token = storage.sign_url(tenant_a, BUCKET, stored["path"], expires_in=30)
        later = time.time() + 120
        monkeypatch.setattr(time, "time", lambda: later)
        with pytest.raises(ForbiddenError) as exc:
            storage.open_signed(token["token"])
        assert exc.value.message == "Link expired"
