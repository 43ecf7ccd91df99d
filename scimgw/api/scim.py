"""SCIM endpoints for users and groups backed by the document store plugin.

Architecture:
    SCIM API (/scim/v2/*) -> scimgw/core/provisioning_service.py -> scimgw/store

Security:
    - Static Bearer Token (RFC 6750) when a token is configured
    - Discovery endpoint (ServiceProviderConfig) is public
"""

from __future__ import annotations
import hashlib
import hmac
import logging
import re
from typing import Optional

from flask import Blueprint, Response, current_app, g, jsonify, request

from scimgw.core.exceptions import ProvisioningError, UnsupportedOperation
from scimgw.core.provisioning_service import ProvisioningService

bp = Blueprint("scim", __name__, url_prefix="/scim/v2")

JSON_MAX_SIZE_BYTES = 65536  # 64 KB
LIST_RESPONSE_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:ListResponse"

# userName eq "bjensen"
_FILTER_RE = re.compile(r'^\s*([\w.$]+)\s+eq\s+"([^"]*)"\s*$', re.IGNORECASE)

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _service() -> ProvisioningService:
    return current_app.config["PROVISIONING_SERVICE"]


def _base_entity() -> str:
    return request.headers.get("X-Base-Entity", "undefined")


def _int_arg(name: str) -> Optional[int]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        raise UnsupportedOperation(f"{name} must be an integer, got: {raw}")


def _parse_filter(raw: str) -> tuple[str, str]:
    match = _FILTER_RE.match(raw)
    if not match:
        raise UnsupportedOperation(f'unsupported filter: {raw} - only <attribute> eq "<value>" is supported')
    return match.group(1), match.group(2)


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise UnsupportedOperation("request body must be a JSON object")
    return payload


def _list_response(resources: list, total: int, start_index: Optional[int]) -> Response:
    return jsonify({
        "schemas": [LIST_RESPONSE_SCHEMA],
        "totalResults": total,
        "itemsPerPage": len(resources),
        "startIndex": start_index or 1,
        "Resources": resources,
    })


def scim_error_response(status: int, detail: str, scim_type: str = None) -> Response:
    """Create SCIM error Response object for before_request handlers."""
    response = jsonify(ProvisioningError(detail, status, scim_type).to_dict())
    response.status_code = status
    return response


def _log_auth_attempt(token: str, success: bool) -> None:
    """Log authentication attempt with a truncated token hash only."""
    token_hash = hashlib.sha256(token.encode()).hexdigest()[:12]
    client_ip = request.headers.get("X-Forwarded-For", request.remote_addr)
    status = "SUCCESS" if success else "FAILED"
    logger.info(f"{status} SCIM auth | token_hash={token_hash} | path={request.path} | client_ip={client_ip}")


# ─────────────────────────────────────────────────────────────────────────────
# Error Handler
# ─────────────────────────────────────────────────────────────────────────────

@bp.errorhandler(ProvisioningError)
def handle_provisioning_error(error: ProvisioningError):
    """Render provisioning failures as SCIM error documents."""
    return jsonify(error.to_dict()), error.status


@bp.errorhandler(413)
def handle_request_too_large(error):
    return scim_error_response(413, "Request payload exceeds maximum allowed size (64 KB)", "invalidValue")


# ─────────────────────────────────────────────────────────────────────────────
# Request Validation Middleware
# ─────────────────────────────────────────────────────────────────────────────

@bp.before_request
def validate_request():
    """Validate bearer token and request size.

    No token configured means the API is open (demo/local use).
    """
    if request.path == "/scim/v2/ServiceProviderConfig":
        return None

    cfg = current_app.config["APP_CONFIG"]
    if cfg.bearer_token:
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return scim_error_response(401, "Authorization header must use Bearer token scheme: 'Authorization: Bearer <token>'.")
        token = auth_header[7:].strip()
        if not token or not hmac.compare_digest(token, cfg.bearer_token):
            _log_auth_attempt(token, success=False)
            return scim_error_response(401, "Invalid bearer token.")
        g.auth_method = "static"

    if request.content_length and request.content_length > JSON_MAX_SIZE_BYTES:
        return scim_error_response(413, "Request payload too large", "invalidValue")
    return None


# ─────────────────────────────────────────────────────────────────────────────
# Discovery
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/ServiceProviderConfig", methods=["GET"])
def service_provider_config():
    cfg = current_app.config["APP_CONFIG"]
    config = {
        "schemas": ["urn:ietf:params:scim:schemas:core:2.0:ServiceProviderConfig"],
        "patch": {"supported": True},
        "bulk": {"supported": False, "maxOperations": 0, "maxPayloadSize": 0},
        "filter": {"supported": True, "maxResults": cfg.page_size_limit},
        "changePassword": {"supported": False},
        "sort": {"supported": False},
        "etag": {"supported": False},
        "authenticationSchemes": [
            {
                "name": "OAuth Bearer Token",
                "description": "Static bearer token",
                "specUri": "https://tools.ietf.org/html/rfc6750",
                "type": "oauthbearertoken",
                "primary": True,
            }
        ],
    }
    return jsonify(config), 200


# ─────────────────────────────────────────────────────────────────────────────
# Users
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/Users", methods=["GET"])
def list_users():
    """List users, or look one up with ``filter=<attribute> eq "<value>"``."""
    attributes = request.args.get("attributes")
    excluded = request.args.get("excludedAttributes")
    start_index = _int_arg("startIndex")
    raw_filter = request.args.get("filter")

    if raw_filter:
        filter_attr, identifier = _parse_filter(raw_filter)
        user = _service().get_user(filter_attr, identifier, attributes, excluded, base_entity=_base_entity())
        resources = [user] if user else []
        return _list_response(resources, len(resources), 1), 200

    res = _service().explore_users(attributes, start_index, _int_arg("count"), excluded, base_entity=_base_entity())
    return _list_response(res["Resources"], res["totalResults"], start_index), 200


@bp.route("/Users/<user_id>", methods=["GET"])
def get_user(user_id: str):
    user = _service().get_user(
        "id", user_id,
        request.args.get("attributes"), request.args.get("excludedAttributes"),
        base_entity=_base_entity(),
    )
    if user is None:
        return scim_error_response(404, f"User {user_id} not found")
    return jsonify(user), 200


@bp.route("/Users", methods=["POST"])
def create_user():
    """Create a user; 201 with Location header."""
    user = _service().create_user(_json_body(), base_entity=_base_entity())
    response = jsonify(user)
    response.status_code = 201
    response.headers["Location"] = f"{request.host_url.rstrip('/')}/scim/v2/Users/{user['id']}"
    return response


@bp.route("/Users/<user_id>", methods=["PATCH"])
def modify_user(user_id: str):
    """Partial update using the attribute object form (``operation`` inline, ``meta.attributes`` to clear)."""
    user = _service().modify_user(user_id, _json_body(), base_entity=_base_entity())
    return jsonify(user), 200


@bp.route("/Users/<user_id>", methods=["DELETE"])
def delete_user(user_id: str):
    _service().delete_user(user_id, base_entity=_base_entity())
    return "", 204


@bp.route("/Users/<user_id>/groups", methods=["GET"])
def user_groups(user_id: str):
    """Groups the user is a member of."""
    groups = _service().get_group_members(
        user_id, request.args.get("attributes", "id,displayName"), base_entity=_base_entity()
    )
    return _list_response(groups, len(groups), 1), 200


# ─────────────────────────────────────────────────────────────────────────────
# Groups
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/Groups", methods=["GET"])
def list_groups():
    attributes = request.args.get("attributes")
    excluded = request.args.get("excludedAttributes")
    start_index = _int_arg("startIndex")
    raw_filter = request.args.get("filter")

    if raw_filter:
        filter_attr, identifier = _parse_filter(raw_filter)
        if filter_attr == "members.value":
            groups = _service().get_group_members(identifier, attributes or "id,displayName",
                                                  base_entity=_base_entity())
            return _list_response(groups, len(groups), 1), 200
        group = _service().get_group(filter_attr, identifier, attributes, excluded, base_entity=_base_entity())
        resources = [group] if group else []
        return _list_response(resources, len(resources), 1), 200

    res = _service().explore_groups(attributes, start_index, _int_arg("count"), excluded, base_entity=_base_entity())
    return _list_response(res["Resources"], res["totalResults"], start_index), 200


@bp.route("/Groups/<group_id>", methods=["GET"])
def get_group(group_id: str):
    group = _service().get_group(
        "id", group_id,
        request.args.get("attributes"), request.args.get("excludedAttributes"),
        base_entity=_base_entity(),
    )
    if group is None:
        return scim_error_response(404, f"Group {group_id} not found")
    return jsonify(group), 200


@bp.route("/Groups", methods=["POST"])
def create_group():
    group = _service().create_group(_json_body(), base_entity=_base_entity())
    response = jsonify(group)
    response.status_code = 201
    response.headers["Location"] = f"{request.host_url.rstrip('/')}/scim/v2/Groups/{group['id']}"
    return response


@bp.route("/Groups/<group_id>", methods=["PATCH"])
def modify_group(group_id: str):
    """Membership changes: ``{"members": [{"value": ..., "operation": "delete"?}]}``."""
    group = _service().modify_group(group_id, _json_body(), base_entity=_base_entity())
    return jsonify(group), 200


@bp.route("/Groups/<group_id>", methods=["DELETE"])
def delete_group(group_id: str):
    _service().delete_group(group_id, base_entity=_base_entity())
    return "", 204


@bp.route("/Groups/<group_id>/users", methods=["GET"])
def group_users(group_id: str):
    """Users referencing the group in their ``groups`` attribute."""
    users = _service().get_group_users(group_id, base_entity=_base_entity())
    return _list_response(users, len(users), 1), 200
