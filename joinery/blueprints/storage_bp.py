"""
Storage blueprint — tenant-prefixed blob storage.

  GET  /api/storage/usage
  POST /api/storage/upload           multipart: bucket, path, file, upsert?
  GET  /api/storage/download         ?bucket=&path=<tenant_id>/...
  GET  /api/storage/list             ?bucket=&path=
  POST /api/storage/remove           { bucket, paths: [...] }
  POST /api/storage/signed-url       { bucket, path, expiresIn? }
  GET  /api/storage/signed/<token>   unauthenticated; the token is the credential
"""

import io

from flask import Blueprint, request, send_file

from joinery.blueprints import json_body, services
from joinery.core.exceptions import ValidationError
from joinery.middleware.tenant_context import current_principal
from joinery.utils.errors import E, api_ok

storage_bp = Blueprint("storage_bp", __name__, url_prefix="/api/storage")


def _send(blob):
    data, content_type = blob
    return send_file(io.BytesIO(data), mimetype=content_type)


def _required(source, *names):
    missing = [n for n in names if not source.get(n)]
    if missing:
        raise ValidationError(
            "Missing required fields", details={"fields": missing}, code=E.VALIDATION_REQUIRED,
        )


@storage_bp.route("/usage", methods=["GET"])
def usage():
    return api_ok(services().storage.usage(current_principal().tenant_id))


@storage_bp.route("/upload", methods=["POST"])
def upload():
    principal = current_principal()
    _required(request.form, "bucket", "path")
    upload_file = request.files.get("file")
    if upload_file is None:
        raise ValidationError("file is required", code=E.VALIDATION_REQUIRED)
    result = services().storage.upload(
        principal.tenant_id,
        request.form["bucket"],
        request.form["path"],
        upload_file.read(),
        content_type=upload_file.mimetype,
        upsert=request.form.get("upsert", "false").lower() == "true",
    )
    return api_ok(result, status=201)


@storage_bp.route("/download", methods=["GET"])
def download():
    principal = current_principal()
    _required(request.args, "bucket", "path")
    return _send(services().storage.download(
        principal.tenant_id, request.args["bucket"], request.args["path"],
    ))


@storage_bp.route("/list", methods=["GET"])
def list_objects():
    principal = current_principal()
    _required(request.args, "bucket")
    return api_ok(services().storage.list(
        principal.tenant_id, request.args["bucket"], request.args.get("path", ""),
    ))


@storage_bp.route("/remove", methods=["POST"])
def remove():
    principal = current_principal()
    body = json_body(required=True)
    _required(body, "bucket", "paths")
    removed = services().storage.remove(principal.tenant_id, body["bucket"], body["paths"])
    return api_ok({"removed": removed})


@storage_bp.route("/signed-url", methods=["POST"])
def signed_url():
    principal = current_principal()
    body = json_body(required=True)
    _required(body, "bucket", "path")
    return api_ok(services().storage.sign_url(
        principal.tenant_id, body["bucket"], body["path"], body.get("expiresIn"),
    ))


@storage_bp.route("/signed/<token>", methods=["GET"])
def signed_download(token):
    return _send(services().storage.open_signed(token))
