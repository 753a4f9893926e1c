"""Cash book blueprint - income/expense report and manual vouchers."""
from datetime import date

from flask import Blueprint, request, jsonify, g
from pos.database import get_session
from pos.middleware import require_tenant
from pos.models import VoucherType
from pos.services import cash_book_service
from pos.utils.payload import json_object


cash_book_bp = Blueprint('cash_book', __name__)


@cash_book_bp.route('/cash-book', methods=['GET'])
@require_tenant
def cash_book():
    """
    Cash book report.

    Query params:
        start, end: YYYY-MM-DD (default: first day of the month .. today)
        method: payment method filter ('all' or omitted for every method)
        type: 'income' / 'expense' to list one direction
    """
    today = date.today()
    start = cash_book_service.parse_date(request.args.get('start'), 'start') or today.replace(day=1)
    end = cash_book_service.parse_date(request.args.get('end'), 'end') or today

    book = cash_book_service.build_cash_book(
        get_session(), g.tenant_id, start, end,
        method=request.args.get('method'),
        kind=request.args.get('type')
    )
    return jsonify(cash_book_service.cash_book_to_json(book))


@cash_book_bp.route('/income-vouchers', methods=['POST'])
@require_tenant
def create_income_voucher():
    voucher = cash_book_service.create_voucher(
        get_session(), g.tenant_id, VoucherType.INCOME.value, json_object(request)
    )
    return jsonify(voucher.to_dict()), 201


@cash_book_bp.route('/expense-vouchers', methods=['POST'])
@require_tenant
def create_expense_voucher():
    voucher = cash_book_service.create_voucher(
        get_session(), g.tenant_id, VoucherType.EXPENSE.value, json_object(request)
    )
    return jsonify(voucher.to_dict()), 201
