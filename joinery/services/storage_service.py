"""
Tenant blob storage.

BlobStore          put / get / list / delete / total_size over (bucket, key)
LocalBlobStore     filesystem backend rooted at BLOB_STORAGE_ROOT
TenantBlobGateway  the only caller of a BlobStore; enforces

  - bucket allow-list                        → ForbiddenError
  - every key is "<tenant_id>/<path>"        (relative paths are prefixed)
  - absolute paths, "..", backslashes, and full paths outside the caller's
    prefix are rejected before the blob store is touched
  - organization quota (max_storage_mb) on upload; current_storage_bytes is
    recalculated after every upload and removal
  - time-limited signed download links (itsdangerous)
"""

from __future__ import annotations

import json
import logging
import mimetypes
import time
from datetime import datetime, timezone
from pathlib import Path

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from joinery.core.exceptions import (
    DuplicateKeyError,
    ForbiddenError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from joinery.models.auth import Organization
from joinery.utils.errors import E

logger = logging.getLogger(__name__)

ALLOWED_BUCKETS = (
    "project-documents",
    "stock-images",
    "stock-documents",
    "equipment-images",
    "equipment-documents",
    "company-assets",
)

_MB = 1024 * 1024
_META_SUFFIX = ".meta.json"


def _mb(n_bytes):
    return round((n_bytes or 0) / _MB, 2)


# ═══════════════════════════════════════════════════════════════
# Backends
# ═══════════════════════════════════════════════════════════════
class BlobStore:
    backend_name = "base"

    def put(self, bucket, key, data: bytes, content_type=None) -> dict:
        raise NotImplementedError

    def get(self, bucket, key) -> tuple[bytes, str]:
        raise NotImplementedError

    def exists(self, bucket, key) -> bool:
        raise NotImplementedError

    def size(self, bucket, key) -> int:
        raise NotImplementedError

    def list(self, bucket, prefix) -> list[dict]:
        raise NotImplementedError

    def delete(self, bucket, keys) -> list[str]:
        raise NotImplementedError

    def total_size(self, bucket, prefix) -> int:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Objects as files: <root>/<bucket>/<key>, content type in a sidecar file."""

    backend_name = "local"

    def __init__(self, root):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, bucket, key):
        return self._root / bucket / key

    @staticmethod
    def _meta(path):
        return path.with_name(path.name + _META_SUFFIX)

    def put(self, bucket, key, data, content_type=None):
        path = self._path(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        content_type = content_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        self._meta(path).write_text(json.dumps({"content_type": content_type}), encoding="utf-8")
        return {"key": key, "size": len(data), "content_type": content_type}

    def get(self, bucket, key):
        path = self._path(bucket, key)
        if not path.is_file():
            raise FileNotFoundError(key)
        meta = self._meta(path)
        content_type = "application/octet-stream"
        if meta.exists():
            content_type = json.loads(meta.read_text(encoding="utf-8")).get("content_type", content_type)
        return path.read_bytes(), content_type

    def exists(self, bucket, key):
        return self._path(bucket, key).is_file()

    def size(self, bucket, key):
        path = self._path(bucket, key)
        return path.stat().st_size if path.is_file() else 0

    def list(self, bucket, prefix):
        folder = self._path(bucket, prefix)
        if not folder.is_dir():
            return []
        entries = []
        for child in sorted(folder.iterdir()):
            if child.name.endswith(_META_SUFFIX):
                continue
            stat = child.stat()
            entries.append({
                "name": child.name,
                "is_folder": child.is_dir(),
                "size": None if child.is_dir() else stat.st_size,
                "updated_at": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            })
        return entries

    def delete(self, bucket, keys):
        removed = []
        for key in keys:
            path = self._path(bucket, key)
            if path.is_file():
                path.unlink()
                meta = self._meta(path)
                if meta.exists():
                    meta.unlink()
                removed.append(key)
        return removed

    def total_size(self, bucket, prefix):
        folder = self._path(bucket, prefix)
        if not folder.is_dir():
            return 0
        return sum(p.stat().st_size for p in folder.rglob("*")
                   if p.is_file() and not p.name.endswith(_META_SUFFIX))


# ═══════════════════════════════════════════════════════════════
# Tenant gateway
# ═══════════════════════════════════════════════════════════════
class TenantBlobGateway:
    def __init__(self, blobs, store, secret_key, *, default_max_mb=500,
                 signed_url_expires=3600, max_signed_url_expires=7 * 24 * 3600):
        self.blobs = blobs
        self.store = store
        self.default_max_mb = default_max_mb
        self.signed_url_expires = signed_url_expires
        self.max_signed_url_expires = max_signed_url_expires
        self._signer = URLSafeTimedSerializer(secret_key, salt="joinery-blob-download")

    # ── path rules ───────────────────────────────────────────────────────

    @staticmethod
    def check_bucket(bucket):
        if bucket not in ALLOWED_BUCKETS:
            raise ForbiddenError("Bucket not allowed")
        return bucket

    @staticmethod
    def _segments(path):
        if not isinstance(path, str):
            raise ValidationError("path must be a string", code=E.VALIDATION_REQUIRED)
        if path.startswith("/") or "\\" in path or "\x00" in path:
            raise ForbiddenError("Access denied")
        segments = [s for s in path.split("/") if s]
        if any(s in (".", "..") for s in segments):
            raise ForbiddenError("Access denied")
        return segments

    def scoped_key(self, tenant_id, path):
        """Relative path → "<tenant_id>/<path>"."""
        segments = self._segments(path)
        if not segments:
            raise ValidationError("path is required", code=E.VALIDATION_REQUIRED)
        return "/".join([str(tenant_id), *segments])

    def owned_key(self, tenant_id, full_path):
        """Full path that must already sit under the caller's prefix."""
        segments = self._segments(full_path)
        if len(segments) < 2 or segments[0] != str(tenant_id):
            raise ForbiddenError("Access denied")
        return "/".join(segments)

    # ── quota ────────────────────────────────────────────────────────────

    def _org(self, tenant_id):
        rows = self.store.select(Organization, [Organization.id == tenant_id])
        if not rows:
            raise NotFoundError(resource="Organization", resource_id=tenant_id)
        return rows[0]

    def usage(self, tenant_id):
        org = self._org(tenant_id)
        max_mb = org.get("max_storage_mb") or self.default_max_mb
        current_mb = _mb(org.get("current_storage_bytes"))
        return {
            "current_mb": current_mb,
            "max_mb": max_mb,
            "remaining_mb": round(max_mb - current_mb, 2),
            "percent_used": round(current_mb / max_mb * 100) if max_mb else 100,
            "plan": org.get("plan"),
        }

    def check_quota(self, tenant_id, extra_bytes):
        org = self._org(tenant_id)
        max_bytes = (org.get("max_storage_mb") or self.default_max_mb) * _MB
        current = org.get("current_storage_bytes") or 0
        if current + extra_bytes > max_bytes:
            logger.warning(
                "Storage limit exceeded", extra={"tenant_id": tenant_id, "event_type": "storage_quota"},
            )
            raise ForbiddenError(
                f"Storage limit exceeded: {_mb(current)} MB used of {_mb(max_bytes)} MB"
            )

    def recalculate_usage(self, tenant_id):
        total = sum(self.blobs.total_size(b, str(tenant_id)) for b in ALLOWED_BUCKETS)
        self.store.update(Organization, [Organization.id == tenant_id],
                          {"current_storage_bytes": total})
        return total

    # ── operations ───────────────────────────────────────────────────────

    def upload(self, tenant_id, bucket, path, data: bytes, content_type=None, upsert=False):
        self.check_bucket(bucket)
        key = self.scoped_key(tenant_id, path)
        existing = self.blobs.size(bucket, key) if self.blobs.exists(bucket, key) else None
        if existing is not None and not upsert:
            raise DuplicateKeyError("Object", field="path", value=key)
        self.check_quota(tenant_id, len(data) - (existing or 0))
        try:
            stored = self.blobs.put(bucket, key, data, content_type)
        except OSError as exc:
            raise UpstreamError("Blob store write failed") from exc
        self.recalculate_usage(tenant_id)
        logger.info(
            "Uploaded %s/%s (%d bytes)", bucket, key, len(data),
            extra={"tenant_id": tenant_id, "event_type": "storage_upload"},
        )
        return {"bucket": bucket, "path": key, "size": stored["size"],
                "content_type": stored["content_type"]}

    def download(self, tenant_id, bucket, full_path):
        self.check_bucket(bucket)
        key = self.owned_key(tenant_id, full_path)
        try:
            return self.blobs.get(bucket, key)
        except FileNotFoundError:
            raise NotFoundError(resource="File", resource_id=key) from None

    def list(self, tenant_id, bucket, path=""):
        self.check_bucket(bucket)
        prefix = self.scoped_key(tenant_id, path) if path else str(tenant_id)
        return self.blobs.list(bucket, prefix)

    def remove(self, tenant_id, bucket, paths):
        self.check_bucket(bucket)
        if not isinstance(paths, list) or not paths:
            raise ValidationError("paths must be a non-empty list", code=E.VALIDATION_REQUIRED)
        keys = [self.scoped_key(tenant_id, p) for p in paths]
        removed = self.blobs.delete(bucket, keys)
        self.recalculate_usage(tenant_id)
        return removed

    def sign_url(self, tenant_id, bucket, full_path, expires_in=None):
        self.check_bucket(bucket)
        key = self.owned_key(tenant_id, full_path)
        expires_in = int(expires_in or self.signed_url_expires)
        if not 0 < expires_in <= self.max_signed_url_expires:
            raise ValidationError("expiresIn out of range", details={"max": self.max_signed_url_expires})
        if not self.blobs.exists(bucket, key):
            raise NotFoundError(resource="File", resource_id=key)
        token = self._signer.dumps({"t": tenant_id, "b": bucket, "p": key, "e": expires_in})
        return {"signedUrl": f"/api/storage/signed/{token}", "token": token,
                "path": key, "expiresIn": expires_in}

    def open_signed(self, token):
        """Validate a signed link and return (bytes, content_type)."""
        try:
            payload, issued = self._signer.loads(
                token, max_age=self.max_signed_url_expires, return_timestamp=True,
            )
        except SignatureExpired:
            raise ForbiddenError("Link expired") from None
        except BadSignature:
            raise ForbiddenError("Invalid link") from None
        if time.time() - issued.timestamp() > payload["e"]:
            raise ForbiddenError("Link expired")
        return self.download(payload["t"], payload["b"], payload["p"])
