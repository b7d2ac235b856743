"""Authorization predicates for groups and bills.

The predicates are pure. The ``ensure_*`` helpers wrap them and raise
``Forbidden`` (or ``Conflict`` for the creator self-removal rule) so that
services can gate mutations in one line. Lookups of unknown groups/bills
must already have raised ``NotFound`` before any of these run.
"""
import logging

from splitbill.errors import Conflict, Forbidden

logger = logging.getLogger(__name__)


def member_ids(group):
    """Explicit members plus the creator, who is always implicitly a member"""
    ids = {member['id'] for member in group.get('members', [])}
    ids.add(group['created_by'])
    return ids


def is_member(group, user_id):
    return user_id == group['created_by'] or any(
        member['id'] == user_id for member in group.get('members', [])
    )


def is_explicit_member(group, user_id):
    return any(member['id'] == user_id for member in group.get('members', []))


def is_creator(group, user_id):
    return user_id == group['created_by']


def is_involved(bill, user_id):
    return user_id in (bill.get('split_among') or []) or user_id == bill['paid_by']


def is_payer(bill, user_id):
    return user_id == bill['paid_by']


def _deny(message, user_id):
    logger.warning(f"Access denied for user {user_id}: {message}")
    raise Forbidden(message)


def ensure_member(group, user_id, message='You are not a member of this group'):
    if not is_member(group, user_id):
        _deny(message, user_id)


def ensure_creator(group, user_id, message='Only group creator can perform this action'):
    if not is_creator(group, user_id):
        _deny(message, user_id)


def ensure_can_remove_member(group, user_id, target_id):
    if is_creator(group, target_id):
        raise Conflict('Group creator cannot be removed from the group')
    if not is_creator(group, user_id) and user_id != target_id:
        _deny('You can only remove yourself from the group', user_id)


def ensure_involved(bill, user_id):
    if not is_involved(bill, user_id):
        _deny('You do not have access to this bill', user_id)


def ensure_payer(bill, user_id, message='Only the person who paid can modify the bill'):
    if not is_payer(bill, user_id):
        _deny(message, user_id)
