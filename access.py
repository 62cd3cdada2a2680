"""
Access control policy

Pure predicates over already-authenticated actor ids. Forms are readable by
anyone holding the link; mutation and response listing belong to the owner.
"""

from typing import Optional

from bson import ObjectId


def _owner_of(form) -> Optional[str]:
    owner = form.get("owner") if isinstance(form, dict) else getattr(form, "owner", None)
    return str(owner) if owner is not None else None


def _responder_of(response) -> Optional[str]:
    responder = response.get("responder") if isinstance(response, dict) else getattr(response, "responder", None)
    return str(responder) if responder is not None else None


def can_read_form(actor: Optional[str], form) -> bool:
    return True


def can_mutate_form(actor: Optional[str], form) -> bool:
    owner = _owner_of(form)
    return actor is not None and owner is not None and actor == owner


def can_list_responses(actor: Optional[str], form) -> bool:
    return can_mutate_form(actor, form)


def can_read_response(actor: Optional[str], form, response) -> bool:
    if actor is None:
        return False
    return actor == _owner_of(form) or actor == _responder_of(response)


def owner_scope(form_id: ObjectId, actor: str) -> dict:
    """Storage filter for owner-gated queries; a non-owner simply matches nothing."""
    return {"_id": form_id, "owner": actor}
