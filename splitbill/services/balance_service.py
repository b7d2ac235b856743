"""Split calculation and balance aggregation.

Balances are never stored: every call folds the group's current bills.
Sign convention for net balances: positive means the member owes into the
group (their share exceeds what they paid), negative means the group owes
the member.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from splitbill.services import access
from splitbill.services.user_service import user_summary
from splitbill.validators import CENT, SPLIT_TYPE_CUSTOM

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
SETTLEMENT_THRESHOLD = Decimal('0.01')


def split_details(bill):
    """Map each participant to the amount they owe for this bill.

    Custom splits are returned as stored. Equal splits give every participant
    the same share rounded half-up to cents; the remainder is not
    redistributed, so the shares may differ from the bill amount by up to
    half a cent per participant.
    """
    if bill['split_type'] == SPLIT_TYPE_CUSTOM and bill.get('custom_split'):
        return dict(bill['custom_split'])

    participants = bill.get('split_among') or []
    if not participants:
        return {}

    share = (Decimal(bill['amount']) / len(participants)).quantize(CENT, rounding=ROUND_HALF_UP)
    return {user_id: share for user_id in participants}


def summarize(bills, members):
    """Per-member totals and net balances for a group.

    ``members`` are user summaries (``id``, ``name``, ``phone_number``).
    Payers or participants who are no longer members still accumulate into
    the spent/owed totals but get no net balance entry.
    """
    total_spent = ZERO
    spent = {member['id']: ZERO for member in members}
    owed = {member['id']: ZERO for member in members}

    for bill in bills:
        amount = Decimal(bill['amount'])
        total_spent += amount
        spent[bill['paid_by']] = spent.get(bill['paid_by'], ZERO) + amount

        for user_id, share in split_details(bill).items():
            owed[user_id] = owed.get(user_id, ZERO) + share

    net = {member['id']: owed[member['id']] - spent[member['id']] for member in members}

    return {
        'total_spent': total_spent,
        'total_spent_by_user': spent,
        'total_owed_by_user': owed,
        'net_balances': net,
        'members': [
            {
                **user_summary(member),
                'total_spent': spent[member['id']],
                'total_owed': owed[member['id']],
                'net_balance': net[member['id']]
            }
            for member in members
        ]
    }


def my_balance(summary, user, members):
    """The caller's view of a group summary.

    Every other member lands in ``you_owe`` when the caller's own net balance
    is negative and in ``owes_you`` otherwise, each carrying the magnitude of
    the caller's net balance rather than a pairwise amount. Clients rely on
    this shape; ``settlements`` gives the pairwise transfers.
    """
    user_id = user['id']
    own_net = summary['net_balances'].get(user_id, ZERO)

    result = {
        'user_id': user_id,
        'user_name': user['name'],
        'total_spent': summary['total_spent_by_user'].get(user_id, ZERO),
        'total_owed': summary['total_owed_by_user'].get(user_id, ZERO),
        'net_balance': own_net,
        'you_owe': [],
        'owes_you': []
    }

    names = {member['id']: member['name'] for member in members}
    for member_id in summary['net_balances']:
        if member_id == user_id:
            continue
        if own_net < 0:
            result['you_owe'].append({
                'user_id': member_id,
                'user_name': names.get(member_id),
                'amount': abs(own_net)
            })
        else:
            result['owes_you'].append({
                'user_id': member_id,
                'user_name': names.get(member_id),
                'amount': own_net
            })

    return result


def settlements(net_balances):
    """Greedy minimal transfer list that clears every net balance.

    Members with a positive balance (owing) pay those with a negative
    balance, largest amounts first.
    """
    debtors = [[uid, amt] for uid, amt in net_balances.items() if amt >= SETTLEMENT_THRESHOLD]
    creditors = [[uid, -amt] for uid, amt in net_balances.items() if -amt >= SETTLEMENT_THRESHOLD]

    debtors.sort(key=lambda x: (-x[1], x[0]))
    creditors.sort(key=lambda x: (-x[1], x[0]))

    transfers = []
    i, j = 0, 0

    while i < len(debtors) and j < len(creditors):
        debtor, debt = debtors[i]
        creditor, credit = creditors[j]

        amount = min(debt, credit)
        transfers.append({
            'from_user_id': debtor,
            'to_user_id': creditor,
            'amount': amount
        })

        debtors[i][1] = debt - amount
        creditors[j][1] = credit - amount

        if debtors[i][1] < SETTLEMENT_THRESHOLD:
            i += 1
        if creditors[j][1] < SETTLEMENT_THRESHOLD:
            j += 1

    return transfers


class BalanceService:
    """Loads a group's bills and members and runs the aggregation"""

    def __init__(self, group_service, bill_service):
        self.group_service = group_service
        self.bill_service = bill_service

    def _load(self, group_id, user_id):
        group = self.group_service.find_group(group_id)
        access.ensure_member(group, user_id)

        members = [user_summary(m) for m in group['members']]
        if not access.is_explicit_member(group, group['created_by']) and group['creator']:
            members.insert(0, group['creator'])

        bills = self.bill_service.get_group_bills(group_id)
        return members, bills

    def get_group_balance(self, group_id, user_id):
        members, bills = self._load(group_id, user_id)
        logger.debug(f"Summarizing {len(bills)} bills for group {group_id}")
        return summarize(bills, members)

    def get_my_balance(self, group_id, user):
        members, bills = self._load(group_id, user['id'])
        return my_balance(summarize(bills, members), user, members)

    def get_settlements(self, group_id, user_id):
        members, bills = self._load(group_id, user_id)
        transfers = settlements(summarize(bills, members)['net_balances'])
        return {
            'group_id': group_id,
            'settlements': transfers,
            'total': len(transfers)
        }
