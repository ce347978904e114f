"""Hub membership JSON API: self-join and self-leave for the JWT subject."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import get_jwt_identity, jwt_required

from hubspace.core.errors import (
    ConflictError,
    MembershipError,
    NotFoundError,
    StateError,
    ValidationError,
)
from hubspace.domains.memberships import services as membership_services
from hubspace.domains.memberships.schemas import MembershipResponse
from hubspace.extensions import limiter

membership_api_bp = Blueprint("membership_api", __name__)


def _membership_limit() -> str:
    return current_app.config.get("RATELIMIT_MEMBERSHIP", "30/minute")


def error_status(exc: MembershipError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (StateError, ConflictError)):
        return 409
    return 500


@membership_api_bp.errorhandler(MembershipError)
def _membership_error(exc: MembershipError):
    status = error_status(exc)
    if status >= 500:
        current_app.logger.exception("Membership store failure: %s", exc)
    return jsonify(exc.to_dict()), status


@membership_api_bp.post("/<hub_id>/members")
@jwt_required()
@limiter.limit(_membership_limit)
def join_hub(hub_id: str):
    membership = membership_services.add_member(hub_id, get_jwt_identity())
    payload = MembershipResponse.model_validate(membership).model_dump(mode="json")
    return jsonify({"ok": True, "membership": payload}), 201


@membership_api_bp.delete("/<hub_id>/members/me")
@jwt_required()
@limiter.limit(_membership_limit)
def leave_hub(hub_id: str):
    membership_services.remove_member(hub_id, get_jwt_identity())
    return jsonify({"ok": True})
