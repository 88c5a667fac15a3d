import calendar
from datetime import date

from flask import Blueprint, jsonify, request
from flask_jwt_extended import current_user, jwt_required

from funil.database import get_db
from funil.utils import date_only, is_gestor, parse_body
from funil.validation import TASK_STATUSES, TaskIn, TaskUpdate

bp = Blueprint('tarefas', __name__)

TASK_SELECT = '''
    SELECT t.*, c.name AS client_name, u.name AS user_name FROM tasks t
    LEFT JOIN clients c ON c.id = t.client_id
    JOIN users u ON u.id = t.user_id
'''


def task_dict(row, today=None):
    today = today or date.today().isoformat()
    return {
        'id': row['id'],
        'title': row['title'],
        'description': row['description'],
        'dueDate': row['due_date'],
        'dueTime': row['due_time'],
        'status': row['status'],
        'client': {'id': row['client_id'], 'name': row['client_name']} if row['client_id'] else None,
        'user': {'id': row['user_id'], 'name': row['user_name']},
        'isOverdue': row['status'] != 'CONCLUIDA' and date_only(row['due_date']) < today,
    }


def clean_client_id(value):
    if value in (None, '', 'none'):
        return None
    return int(value)


@bp.route('/api/tasks', methods=['GET'])
@jwt_required()
def api_tasks_list():
    db = get_db()
    query = TASK_SELECT + ' WHERE 1=1'
    params = []

    if not is_gestor():
        query += ' AND t.user_id = ?'
        params.append(current_user['id'])

    status = request.args.get('status')
    if status in TASK_STATUSES:
        query += ' AND t.status = ?'
        params.append(status)

    client_id = request.args.get('clientId', type=int)
    if client_id:
        query += ' AND t.client_id = ?'
        params.append(client_id)

    month = request.args.get('month', type=int)
    year = request.args.get('year', type=int)
    if month and year and 1 <= month <= 12:
        last_day = calendar.monthrange(year, month)[1]
        query += ' AND date(t.due_date) BETWEEN ? AND ?'
        params += [f'{year:04d}-{month:02d}-01', f'{year:04d}-{month:02d}-{last_day:02d}']

    query += ' ORDER BY t.due_date, t.id'
    rows = db.execute(query, params).fetchall()
    return jsonify({'tasks': [task_dict(r) for r in rows]})


@bp.route('/api/tasks', methods=['POST'])
@jwt_required()
def api_tasks_create():
    data = parse_body(TaskIn)
    db = get_db()

    user_id = data.assigned_user_id if is_gestor() and data.assigned_user_id else current_user['id']
    try:
        client_id = clean_client_id(data.client_id)
    except ValueError:
        return jsonify({'error': 'Cliente inválido'}), 400
    if client_id and not db.execute('SELECT 1 FROM clients WHERE id = ?', (client_id,)).fetchone():
        return jsonify({'error': 'Cliente não encontrado'}), 404

    cur = db.execute('''INSERT INTO tasks (title, description, due_date, due_time, status, client_id, user_id)
                        VALUES (?, ?, ?, ?, ?, ?, ?)''',
                     (data.title, data.description or None, date_only(data.due_date), data.due_time or None,
                      data.status, client_id, user_id))
    db.commit()

    row = db.execute(TASK_SELECT + ' WHERE t.id = ?', (cur.lastrowid,)).fetchone()
    return jsonify({'task': task_dict(row)}), 201


@bp.route('/api/tasks/urgent', methods=['GET'])
@jwt_required()
def api_tasks_urgent():
    db = get_db()
    today = date.today().isoformat()
    # Always the logged-in user's own tasks, whatever the role
    rows = db.execute(TASK_SELECT + '''
        WHERE t.user_id = ? AND t.status != 'CONCLUIDA' AND date(t.due_date) <= ?
        ORDER BY t.due_date LIMIT 20
    ''', (current_user['id'], today)).fetchall()
    return jsonify({'tasks': [task_dict(r, today) for r in rows]})


@bp.route('/api/tasks/<int:id>', methods=['PUT', 'PATCH'])
@jwt_required()
def api_tasks_update(id):
    data = parse_body(TaskUpdate)
    db = get_db()

    task = db.execute('SELECT * FROM tasks WHERE id = ?', (id,)).fetchone()
    if not task:
        return jsonify({'error': 'Tarefa não encontrada'}), 404
    if not is_gestor() and task['user_id'] != current_user['id']:
        return jsonify({'error': 'Sem permissão para editar esta tarefa'}), 403

    changes = data.model_dump(exclude_unset=True)
    if 'due_date' in changes:
        changes['due_date'] = date_only(changes['due_date'])

    fields = [f'{k}=?' for k in changes]
    if fields:
        db.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id=?", list(changes.values()) + [id])
        db.commit()

    row = db.execute(TASK_SELECT + ' WHERE t.id = ?', (id,)).fetchone()
    return jsonify({'task': task_dict(row)})


@bp.route('/api/tasks/<int:id>', methods=['DELETE'])
@jwt_required()
def api_tasks_delete(id):
    db = get_db()
    task = db.execute('SELECT * FROM tasks WHERE id = ?', (id,)).fetchone()
    if not task:
        return jsonify({'error': 'Tarefa não encontrada'}), 404
    if not is_gestor() and task['user_id'] != current_user['id']:
        return jsonify({'error': 'Sem permissão para excluir esta tarefa'}), 403
    db.execute('DELETE FROM tasks WHERE id = ?', (id,))
    db.commit()
    return jsonify({'success': True})
