import json
import logging
from decimal import Decimal

from splitbill.errors import Conflict, NotFound, ValidationFailed
from splitbill.services import access
from splitbill.services.balance_service import split_details
from splitbill.services.group_service import utc_now
from splitbill.services.user_service import user_summary
from splitbill.validators import SPLIT_TYPE_CUSTOM, SPLIT_TYPE_EQUAL

logger = logging.getLogger(__name__)

CUSTOM_SPLIT_TOLERANCE = Decimal('0.01')


def _load_custom_split(raw):
    if not raw:
        return None
    return {int(user_id): Decimal(amount) for user_id, amount in json.loads(raw).items()}


def _dump_custom_split(custom_split):
    if not custom_split:
        return None
    return json.dumps({str(user_id): str(amount) for user_id, amount in custom_split.items()})


def map_row_to_bill(row, payer=None):
    """Convert database row to bill dict"""
    if not row:
        return None
    return {
        'id': row['id'],
        'group_id': row['group_id'],
        'paid_by': row['paid_by'],
        'payer': payer,
        'description': row['description'],
        'amount': Decimal(row['amount']),
        'bill_date': row['bill_date'],
        'split_type': row['split_type'],
        'split_among': json.loads(row['split_among']) if row['split_among'] else [],
        'custom_split': _load_custom_split(row['custom_split']),
        'created_at': row['created_at'],
        'updated_at': row['updated_at']
    }


def validate_split(group, bill):
    """Check participants and custom shares of a complete bill against its group"""
    members = access.member_ids(group)
    non_members = [uid for uid in bill['split_among'] if uid not in members]
    if non_members:
        raise ValidationFailed(
            f"User ID {non_members[0]} is not a member of this group",
            {'split_among': [f"User ID {uid} is not a member of this group" for uid in non_members]}
        )

    if bill['split_type'] != SPLIT_TYPE_CUSTOM:
        return

    custom_split = bill.get('custom_split') or {}
    if not custom_split:
        raise ValidationFailed(
            'Validation failed',
            {'custom_split': ['The custom split field is required when split type is custom.']}
        )

    outside = [uid for uid in custom_split if uid not in bill['split_among']]
    if outside:
        raise ValidationFailed(
            'Validation failed',
            {'custom_split': [f"User ID {uid} is not in split_among" for uid in outside]}
        )

    total = sum(custom_split.values(), Decimal('0'))
    if abs(total - bill['amount']) > CUSTOM_SPLIT_TOLERANCE:
        raise Conflict('Custom split amounts must equal the total bill amount')


class BillService:
    """Service for managing bills with SQLite persistence"""

    def __init__(self, db, group_service, user_service):
        self.db = db
        self.group_service = group_service
        self.user_service = user_service

    def _check_users_exist(self, user_ids):
        missing = self.user_service.missing_users(user_ids)
        if missing:
            raise ValidationFailed('Validation failed', {
                'split_among': [f"The selected user ID {uid} is invalid." for uid in missing]
            })

    def _with_payers(self, rows):
        payers = self.user_service.get_users({row['paid_by'] for row in rows})
        return [map_row_to_bill(row, user_summary(payers.get(row['paid_by']))) for row in rows]

    def get_bill(self, bill_id):
        row = self.db.fetch_one('SELECT * FROM bills WHERE id = ?', (bill_id,))
        if not row:
            return None
        return self._with_payers([row])[0]

    def find_bill(self, group_id, bill_id):
        """Bill within group, or NotFound"""
        bill = self.get_bill(bill_id)
        if not bill or bill['group_id'] != group_id:
            raise NotFound('Bill not found')
        return bill

    def get_group_bills(self, group_id):
        """All bills of a group, newest first"""
        rows = self.db.fetch_all(
            'SELECT * FROM bills WHERE group_id = ? ORDER BY created_at DESC, id DESC',
            (group_id,)
        )
        return self._with_payers(rows)

    def create_bill(self, group_id, user_id, fields):
        """Create a bill paid by user_id"""
        self._check_users_exist(fields['split_among'])

        group = self.group_service.find_group(group_id)
        access.ensure_member(group, user_id)

        bill = {
            'paid_by': user_id,
            'amount': fields['amount'],
            'split_type': fields['split_type'],
            'split_among': fields['split_among'],
            'custom_split': fields.get('custom_split') if fields['split_type'] == SPLIT_TYPE_CUSTOM else None
        }
        validate_split(group, bill)

        with self.db.transaction() as conn:
            cursor = conn.execute('''
                INSERT INTO bills (group_id, paid_by, description, amount, bill_date, split_type, split_among, custom_split)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                group_id,
                user_id,
                fields['description'],
                str(fields['amount']),
                fields['bill_date'],
                bill['split_type'],
                json.dumps(bill['split_among']),
                _dump_custom_split(bill['custom_split'])
            ))
            bill_id = cursor.lastrowid

        logger.info(f"Bill {bill_id} created in group {group_id} by user {user_id}")
        return self.get_bill(bill_id)

    def show_bill(self, group_id, bill_id, user_id):
        self.group_service.find_group(group_id)
        bill = self.find_bill(group_id, bill_id)
        access.ensure_involved(bill, user_id)
        bill['split_details'] = split_details(bill)
        return bill

    def list_bills(self, group_id, user_id):
        group = self.group_service.find_group(group_id)
        access.ensure_member(group, user_id)
        return self.get_group_bills(group_id)

    def update_bill(self, group_id, bill_id, user_id, fields):
        """Apply a partial update; the merged bill is validated as a whole"""
        if fields.get('split_among'):
            self._check_users_exist(fields['split_among'])

        group = self.group_service.find_group(group_id)
        bill = self.find_bill(group_id, bill_id)
        access.ensure_payer(bill, user_id, 'Only the person who paid can update the bill')

        merged = dict(bill)
        for key, value in fields.items():
            if value is not None:
                merged[key] = value
        if merged['split_type'] == SPLIT_TYPE_EQUAL:
            merged['custom_split'] = None

        validate_split(group, merged)

        with self.db.transaction() as conn:
            conn.execute('''
                UPDATE bills
                SET description = ?, amount = ?, bill_date = ?, split_type = ?,
                    split_among = ?, custom_split = ?, updated_at = ?
                WHERE id = ?
            ''', (
                merged['description'],
                str(merged['amount']),
                merged['bill_date'],
                merged['split_type'],
                json.dumps(merged['split_among']),
                _dump_custom_split(merged['custom_split']),
                utc_now(),
                bill_id
            ))

        logger.info(f"Bill {bill_id} updated by user {user_id}")
        return self.get_bill(bill_id)

    def delete_bill(self, group_id, bill_id, user_id):
        self.group_service.find_group(group_id)
        bill = self.find_bill(group_id, bill_id)
        access.ensure_payer(bill, user_id, 'Only the person who paid can delete the bill')

        with self.db.transaction() as conn:
            conn.execute('DELETE FROM bills WHERE id = ?', (bill_id,))

        logger.info(f"Bill {bill_id} deleted by user {user_id}")
