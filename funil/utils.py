import re
from datetime import datetime
from functools import wraps

from flask import jsonify, request
from flask_jwt_extended import get_current_user, verify_jwt_in_request

GESTOR = 'GESTOR'
VENDEDOR = 'VENDEDOR'


def gestor_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        user = get_current_user()
        if user is None or user['role'] != GESTOR:
            return jsonify({'error': 'Acesso negado'}), 403
        return fn(*args, **kwargs)
    return wrapper


def is_gestor(user=None):
    user = user if user is not None else get_current_user()
    return user is not None and user['role'] == GESTOR


def parse_body(schema):
    """Validate the JSON body against a pydantic schema.

    ``ValidationError`` propagates to the app-level handler, which answers 400.
    """
    return schema.model_validate(request.get_json(silent=True) or {})


def only_digits(value):
    return re.sub(r'\D', '', value or '')


def format_currency(value):
    if value is None:
        value = 0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return value
    # 1234.5 -> R$ 1.234,50
    text = f"{value:,.2f}".replace(',', 'X').replace('.', ',').replace('X', '.')
    return f"R$ {text}"


def date_only(value):
    if not value:
        return None
    if isinstance(value, datetime):
        return value.strftime('%Y-%m-%d')
    return str(value).split(' ')[0].split('T')[0]


def stage_dict(row, client_count=None):
    data = {
        'id': row['id'],
        'name': row['name'],
        'color': row['color'],
        'order': row['stage_order'],
        'isClosedStage': bool(row['is_closed_stage']),
    }
    if client_count is not None:
        data['clientCount'] = client_count
    return data


def client_dict(row):
    data = {
        'id': row['id'],
        'name': row['name'],
        'cnpj': row['cnpj'],
        'phone': row['phone'],
        'email': row['email'],
        'address': row['address'],
        'potentialValue': row['potential_value'] or 0,
        'currentStageId': row['current_stage_id'],
        'assignedUserId': row['assigned_user_id'],
        'archivedFromPipeline': bool(row['archived_from_pipeline']),
        'createdAt': row['created_at'],
        'updatedAt': row['updated_at'],
    }
    keys = row.keys()
    if 'stage_name' in keys:
        data['currentStage'] = {
            'id': row['current_stage_id'],
            'name': row['stage_name'],
            'color': row['stage_color'],
            'isClosedStage': bool(row['stage_is_closed']),
        }
    if 'user_name' in keys:
        data['assignedUser'] = {'id': row['assigned_user_id'], 'name': row['user_name']} if row['assigned_user_id'] else None
    return data


def user_dict(row):
    return {
        'id': row['id'],
        'name': row['name'],
        'email': row['email'],
        'role': row['role'],
        'monthlyGoal': row['monthly_goal'] or 0,
        'isActive': bool(row['is_active']),
    }


CLIENT_SELECT = '''
    SELECT c.*, s.name AS stage_name, s.color AS stage_color, s.is_closed_stage AS stage_is_closed,
           u.name AS user_name
    FROM clients c
    JOIN pipeline_stages s ON s.id = c.current_stage_id
    LEFT JOIN users u ON u.id = c.assigned_user_id
'''
