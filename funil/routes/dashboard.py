from datetime import date

from flask import Blueprint, jsonify
from flask_jwt_extended import current_user, jwt_required

from funil.database import first_stage, get_db
from funil.models import sale_value_of
from funil.utils import is_gestor

bp = Blueprint('dashboard', __name__)


@bp.route('/api/dashboard/stats')
@jwt_required()
def api_dashboard_stats():
    db = get_db()
    gestor = is_gestor()
    scope = '' if gestor else ' AND c.assigned_user_id = ?'
    params = [] if gestor else [current_user['id']]

    # 1. Closed clients: latest recorded sale value, falling back to the potential value
    closed = db.execute('''
        SELECT c.id, c.potential_value FROM clients c
        JOIN pipeline_stages s ON s.id = c.current_stage_id
        WHERE s.is_closed_stage = 1''' + scope, params).fetchall()

    current_value = 0.0
    for client in closed:
        sale_value = None
        rows = db.execute('SELECT metadata FROM interactions WHERE client_id = ? AND metadata IS NOT NULL '
                          'ORDER BY created_at DESC, id DESC', (client['id'],)).fetchall()
        for row in rows:
            sale_value = sale_value_of(row['metadata'])
            if sale_value is not None:
                break
        current_value += sale_value if sale_value is not None else (client['potential_value'] or 0)

    # 2. Overdue tasks
    task_query = "SELECT COUNT(*) AS c FROM tasks WHERE status != 'CONCLUIDA' AND date(due_date) < ?"
    task_params = [date.today().isoformat()]
    if not gestor:
        task_query += ' AND user_id = ?'
        task_params.append(current_user['id'])
    overdue = db.execute(task_query, task_params).fetchone()['c']

    # 3. New leads: clients sitting in the first stage
    new_leads = 0
    stage = first_stage(db)
    if stage:
        new_leads = db.execute('SELECT COUNT(*) AS c FROM clients c WHERE c.current_stage_id = ?'
                               ' AND c.archived_from_pipeline = 0' + scope,
                               [stage['id']] + params).fetchone()['c']

    return jsonify({
        'monthlyGoal': current_user['monthly_goal'] or 0,
        'currentValue': round(current_value, 2),
        'overdueTasks': overdue,
        'newLeads': new_leads,
    })
