from flask import Blueprint, jsonify, request

from funil.database import get_db
from funil.services.reporting import build_report
from funil.utils import gestor_required

bp = Blueprint('relatorios', __name__)


@bp.route('/api/reports')
@gestor_required
def api_reports():
    period = request.args.get('period', 'month')
    return jsonify(build_report(get_db(), period))
