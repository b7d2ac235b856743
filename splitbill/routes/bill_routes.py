from flask import Blueprint, request

from splitbill.middleware.auth import auth_required, current_user, current_user_id
from splitbill.responses import created_response, success_response
from splitbill.validators import validate_bill


def create_bill_routes(bill_service, balance_service):
    bp = Blueprint('bill_routes', __name__, url_prefix='/api/v1/groups/<int:group_id>')

    @bp.post('/bills')
    @auth_required
    def create_bill(group_id):
        data = validate_bill(request.get_json(silent=True) or {})
        bill = bill_service.create_bill(group_id, current_user_id(), data)
        return created_response(bill, 'Bill created successfully')

    @bp.get('/bills')
    @auth_required
    def get_bills(group_id):
        bills = bill_service.list_bills(group_id, current_user_id())
        return success_response({'bills': bills, 'total': len(bills)}, 'Bills retrieved successfully')

    @bp.get('/bills/<int:bill_id>')
    @auth_required
    def get_bill(group_id, bill_id):
        bill = bill_service.show_bill(group_id, bill_id, current_user_id())
        return success_response(bill, 'Bill details retrieved successfully')

    @bp.put('/bills/<int:bill_id>')
    @auth_required
    def update_bill(group_id, bill_id):
        data = validate_bill(request.get_json(silent=True) or {}, partial=True)
        bill = bill_service.update_bill(group_id, bill_id, current_user_id(), data)
        return success_response(bill, 'Bill updated successfully')

    @bp.delete('/bills/<int:bill_id>')
    @auth_required
    def delete_bill(group_id, bill_id):
        bill_service.delete_bill(group_id, bill_id, current_user_id())
        return success_response(None, 'Bill deleted successfully')

    @bp.get('/balance')
    @auth_required
    def get_group_balance(group_id):
        summary = balance_service.get_group_balance(group_id, current_user_id())
        return success_response(summary, 'Group balance summary retrieved successfully')

    @bp.get('/balance/settlements')
    @auth_required
    def get_settlements(group_id):
        result = balance_service.get_settlements(group_id, current_user_id())
        return success_response(result, 'Settlement plan retrieved successfully')

    @bp.get('/my-balance')
    @auth_required
    def get_my_balance(group_id):
        balance = balance_service.get_my_balance(group_id, current_user())
        return success_response(balance, 'Your balance retrieved successfully')

    return bp
