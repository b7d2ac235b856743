import logging
import sqlite3
from datetime import datetime, timezone

from splitbill.errors import Conflict, NotFound
from splitbill.services import access
from splitbill.services.user_service import user_summary

logger = logging.getLogger(__name__)

MEMBERS_QUERY = '''
    SELECT u.id, u.name, u.phone_number, gm.joined_at
    FROM group_members gm
    JOIN users u ON u.id = gm.user_id
    WHERE gm.group_id = ?
    ORDER BY gm.joined_at, u.id
'''


def utc_now():
    return datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')


def map_row_to_member(row):
    return {
        'id': row['id'],
        'name': row['name'],
        'phone_number': row['phone_number'],
        'joined_at': row['joined_at']
    }


def map_row_to_group(row, members=None, creator=None):
    """Convert database row to group dict"""
    if not row:
        return None
    if members is None:
        members = []
    return {
        'id': row['id'],
        'name': row['name'],
        'description': row['description'],
        'created_by': row['created_by'],
        'creator': creator,
        'members': members,
        'created_at': row['created_at'],
        'updated_at': row['updated_at']
    }


class GroupService:
    """Service for managing groups and their membership rows"""

    def __init__(self, db, user_service):
        self.db = db
        self.user_service = user_service

    def _load_group(self, conn, row):
        members = [map_row_to_member(m) for m in conn.execute(MEMBERS_QUERY, (row['id'],)).fetchall()]
        creator = next((m for m in members if m['id'] == row['created_by']), None)
        if creator is None:
            creator = user_summary(self.user_service.get_user(row['created_by']))
        else:
            creator = user_summary(creator)
        return map_row_to_group(row, members, creator)

    def get_group(self, group_id):
        """Get group by ID with members"""
        with self.db.connection() as conn:
            row = conn.execute('SELECT * FROM split_groups WHERE id = ?', (group_id,)).fetchone()
            if not row:
                return None
            return self._load_group(conn, row)

    def find_group(self, group_id):
        group = self.get_group(group_id)
        if not group:
            raise NotFound('Group not found')
        return group

    def _load_groups(self, query, params):
        with self.db.connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._load_group(conn, row) for row in rows]

    def create_group(self, name, description, created_by):
        """Create a new group and add creator as member"""
        with self.db.transaction() as conn:
            cursor = conn.execute(
                'INSERT INTO split_groups (name, description, created_by) VALUES (?, ?, ?)',
                (name, description, created_by)
            )
            group_id = cursor.lastrowid
            conn.execute(
                'INSERT INTO group_members (group_id, user_id, joined_at) VALUES (?, ?, ?)',
                (group_id, created_by, utc_now())
            )

        logger.info(f"Group {group_id} created by user {created_by}")
        return self.get_group(group_id)

    def get_user_groups(self, user_id):
        """Groups the user created or is a member of, newest first"""
        return self._load_groups('''
            SELECT DISTINCT g.* FROM split_groups g
            LEFT JOIN group_members gm ON g.id = gm.group_id
            WHERE g.created_by = ? OR gm.user_id = ?
            ORDER BY g.created_at DESC, g.id DESC
        ''', (user_id, user_id))

    def get_created_groups(self, user_id):
        return self._load_groups(
            'SELECT * FROM split_groups WHERE created_by = ? ORDER BY created_at DESC, id DESC',
            (user_id,)
        )

    def show_group(self, group_id, user_id):
        group = self.find_group(group_id)
        access.ensure_member(group, user_id, 'You do not have access to this group')
        return group

    def update_group(self, group_id, user_id, fields):
        group = self.find_group(group_id)
        access.ensure_creator(group, user_id, 'Only group creator can update the group')

        name = fields.get('name') or group['name']
        description = fields['description'] if 'description' in fields else group['description']

        with self.db.transaction() as conn:
            conn.execute(
                'UPDATE split_groups SET name = ?, description = ?, updated_at = ? WHERE id = ?',
                (name, description, utc_now(), group_id)
            )

        logger.info(f"Group {group_id} updated by user {user_id}")
        return self.get_group(group_id)

    def delete_group(self, group_id, user_id):
        """Delete group; membership rows and bills cascade"""
        group = self.find_group(group_id)
        access.ensure_creator(group, user_id, 'Only group creator can delete the group')

        with self.db.transaction() as conn:
            conn.execute('DELETE FROM split_groups WHERE id = ?', (group_id,))

        logger.info(f"Group {group_id} deleted by user {user_id}")

    def add_member(self, group_id, user_id, phone_number):
        """Add the user owning phone_number to the group; returns that user"""
        group = self.find_group(group_id)
        access.ensure_creator(group, user_id, 'Only group creator can add members')

        new_member = self.user_service.get_user_by_phone(phone_number)
        if not new_member:
            raise NotFound('User not found')

        if access.is_member(group, new_member['id']):
            raise Conflict('User is already a member of this group')

        try:
            with self.db.transaction() as conn:
                conn.execute(
                    'INSERT INTO group_members (group_id, user_id, joined_at) VALUES (?, ?, ?)',
                    (group_id, new_member['id'], utc_now())
                )
        except sqlite3.IntegrityError:
            raise Conflict('User is already a member of this group')

        logger.info(f"User {new_member['id']} added to group {group_id}")
        return user_summary(new_member)

    def remove_member(self, group_id, user_id, member_id):
        """Remove member; returns True when the caller removed themself"""
        group = self.find_group(group_id)
        access.ensure_can_remove_member(group, user_id, member_id)

        if not access.is_explicit_member(group, member_id):
            raise Conflict('User is not a member of this group')

        with self.db.transaction() as conn:
            conn.execute(
                'DELETE FROM group_members WHERE group_id = ? AND user_id = ?',
                (group_id, member_id)
            )

        logger.info(f"User {member_id} removed from group {group_id} by user {user_id}")
        return user_id == member_id

    def get_members(self, group_id, user_id):
        group = self.find_group(group_id)
        access.ensure_member(group, user_id, 'You do not have access to this group')
        return group['members']
