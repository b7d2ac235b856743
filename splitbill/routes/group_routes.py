from flask import Blueprint, request

from splitbill.middleware.auth import auth_required, current_user_id
from splitbill.responses import created_response, success_response
from splitbill.validators import validate_group, validate_member


def create_group_routes(group_service):
    bp = Blueprint('group_routes', __name__, url_prefix='/api/v1/groups')

    @bp.post('/')
    @auth_required
    def create_group():
        data = validate_group(request.get_json(silent=True) or {})
        group = group_service.create_group(data['name'], data.get('description'), current_user_id())
        return created_response(group, 'Group created successfully')

    @bp.get('/')
    @auth_required
    def get_groups():
        groups = group_service.get_user_groups(current_user_id())
        return success_response({'groups': groups, 'total': len(groups)}, 'Groups retrieved successfully')

    @bp.get('/my')
    @auth_required
    def my_groups():
        groups = group_service.get_created_groups(current_user_id())
        return success_response({'groups': groups, 'total': len(groups)}, 'My groups retrieved successfully')

    @bp.get('/<int:group_id>')
    @auth_required
    def get_group(group_id):
        group = group_service.show_group(group_id, current_user_id())
        return success_response(group, 'Group details retrieved successfully')

    @bp.put('/<int:group_id>')
    @auth_required
    def update_group(group_id):
        data = validate_group(request.get_json(silent=True) or {}, partial=True)
        group = group_service.update_group(group_id, current_user_id(), data)
        return success_response(group, 'Group updated successfully')

    @bp.delete('/<int:group_id>')
    @auth_required
    def delete_group(group_id):
        group_service.delete_group(group_id, current_user_id())
        return success_response(None, 'Group deleted successfully')

    @bp.post('/<int:group_id>/members')
    @auth_required
    def add_member(group_id):
        data = validate_member(request.get_json(silent=True) or {})
        member = group_service.add_member(group_id, current_user_id(), data['phone_number'])
        return success_response(member, 'Member added to group successfully')

    @bp.get('/<int:group_id>/members')
    @auth_required
    def get_members(group_id):
        members = group_service.get_members(group_id, current_user_id())
        return success_response(members, 'Group members retrieved successfully')

    @bp.delete('/<int:group_id>/members/<int:member_id>')
    @auth_required
    def remove_member(group_id, member_id):
        left = group_service.remove_member(group_id, current_user_id(), member_id)
        message = 'You have left the group successfully' if left else 'Member removed from group successfully'
        return success_response(None, message)

    return bp
