import sqlite3
from flask import Blueprint, jsonify, request
from flask_jwt_extended import current_user, jwt_required
from werkzeug.security import generate_password_hash

from funil.database import get_db
from funil.utils import gestor_required, is_gestor, parse_body, user_dict
from funil.validation import (ConfigIn, CustomFieldIn, ENTITY_TYPES, GoalIn, InteractionTypeIn,
                              InteractionTypeUpdate, UserIn, UserUpdate)

bp = Blueprint('settings', __name__)

# Never returned in clear by the config listing
SECRET_KEYS = ('aiApiKey',)


def interaction_type_dict(row):
    return {
        'id': row['id'],
        'name': row['name'],
        'emoji': row['emoji'],
        'color': row['color'],
        'isSaleType': bool(row['is_sale_type']),
        'isSystem': bool(row['is_system']),
        'order': row['type_order'],
    }


def custom_field_dict(row):
    return {
        'id': row['id'],
        'name': row['name'],
        'fieldType': row['field_type'],
        'entityType': row['entity_type'],
        'options': row['options'],
        'formula': row['formula'],
        'required': bool(row['required']),
        'order': row['field_order'],
        'highlightColor': row['highlight_color'],
    }


def config_dict(row):
    value = row['value']
    if row['key'] in SECRET_KEYS and value:
        value = '•' * 8 + value[-4:]
    return {'key': row['key'], 'value': value, 'updatedAt': row['updated_at']}


# --- SYSTEM CONFIG ---
@bp.route('/api/admin/system-config', methods=['GET'])
@jwt_required()
def api_config_list():
    db = get_db()
    key = request.args.get('key')
    if key:
        row = db.execute('SELECT * FROM system_config WHERE key = ?', (key,)).fetchone()
        return jsonify({'config': config_dict(row) if row else None})
    rows = db.execute('SELECT * FROM system_config ORDER BY key').fetchall()
    return jsonify({'configs': [config_dict(r) for r in rows]})


@bp.route('/api/admin/system-config', methods=['POST'])
@gestor_required
def api_config_upsert():
    data = parse_body(ConfigIn)
    db = get_db()
    db.execute('''INSERT INTO system_config (key, value, updated_at) VALUES (?, ?, datetime('now'))
                  ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at''',
               (data.key, data.value or ''))
    db.commit()
    row = db.execute('SELECT * FROM system_config WHERE key = ?', (data.key,)).fetchone()
    return jsonify(config_dict(row))


# --- MONTHLY GOAL ---
@bp.route('/api/admin/monthly-goal', methods=['GET'])
@jwt_required()
def api_goal_get():
    return jsonify({'monthlyGoal': current_user['monthly_goal'] or 0})


@bp.route('/api/admin/monthly-goal', methods=['PATCH'])
@jwt_required()
def api_goal_update():
    if not is_gestor():
        return jsonify({'error': 'Apenas gestores podem definir a meta'}), 403
    data = parse_body(GoalIn)
    db = get_db()
    db.execute('UPDATE users SET monthly_goal = ? WHERE id = ?', (data.monthly_goal, current_user['id']))
    db.commit()
    return jsonify({'monthlyGoal': data.monthly_goal})


# --- USERS ---
@bp.route('/api/users', methods=['GET'])
@gestor_required
def api_users_options():
    db = get_db()
    rows = db.execute('SELECT id, name, role FROM users WHERE is_active = 1 ORDER BY name').fetchall()
    return jsonify({'users': [dict(r) for r in rows]})


@bp.route('/api/admin/users', methods=['GET'])
@gestor_required
def api_users_list():
    db = get_db()
    users = db.execute('SELECT * FROM users ORDER BY name').fetchall()
    return jsonify({'users': [user_dict(u) for u in users]})


@bp.route('/api/admin/users', methods=['POST'])
@gestor_required
def api_users_create():
    data = parse_body(UserIn)
    db = get_db()

    email = data.email.lower()
    if db.execute('SELECT 1 FROM users WHERE email = ?', (email,)).fetchone():
        return jsonify({'error': 'Email já cadastrado'}), 400

    cur = db.execute('INSERT INTO users (name, email, password, role, monthly_goal, is_active) VALUES (?, ?, ?, ?, ?, 1)',
                     (data.name, email, generate_password_hash(data.password), data.role, data.monthly_goal))
    db.commit()
    user = db.execute('SELECT * FROM users WHERE id = ?', (cur.lastrowid,)).fetchone()
    return jsonify({'user': user_dict(user)}), 201


@bp.route('/api/admin/users/<int:id>', methods=['PATCH', 'PUT'])
@gestor_required
def api_users_update(id):
    data = parse_body(UserUpdate)
    db = get_db()

    if not db.execute('SELECT 1 FROM users WHERE id = ?', (id,)).fetchone():
        return jsonify({'error': 'Usuário não encontrado'}), 404

    if data.is_active is False and id == current_user['id']:
        return jsonify({'error': 'Você não pode desativar sua própria conta'}), 400
    if data.role is not None and data.role not in ('GESTOR', 'VENDEDOR'):
        return jsonify({'error': 'Perfil inválido'}), 400

    fields = []
    values = []
    if data.name is not None:
        fields.append('name=?')
        values.append(data.name)
    if data.role is not None:
        fields.append('role=?')
        values.append(data.role)
    if data.password:
        fields.append('password=?')
        values.append(generate_password_hash(data.password))
    if data.is_active is not None:
        fields.append('is_active=?')
        values.append(int(data.is_active))
    if data.monthly_goal is not None:
        fields.append('monthly_goal=?')
        values.append(data.monthly_goal)

    if fields:
        values.append(id)
        db.execute(f"UPDATE users SET {', '.join(fields)} WHERE id=?", values)
        db.commit()

    user = db.execute('SELECT * FROM users WHERE id = ?', (id,)).fetchone()
    return jsonify({'user': user_dict(user)})


@bp.route('/api/admin/users/<int:id>', methods=['DELETE'])
@gestor_required
def api_users_delete(id):
    if id == current_user['id']:
        return jsonify({'error': 'Você não pode desativar sua própria conta'}), 400
    # Soft delete: interactions keep pointing at the author
    db = get_db()
    db.execute('UPDATE users SET is_active = 0 WHERE id = ?', (id,))
    db.commit()
    return jsonify({'success': True})


# --- INTERACTION TYPES ---
@bp.route('/api/admin/interaction-types', methods=['GET'])
@jwt_required()
def api_interaction_types_list():
    db = get_db()
    rows = db.execute('SELECT * FROM interaction_types ORDER BY type_order, id').fetchall()
    return jsonify({'types': [interaction_type_dict(r) for r in rows]})


@bp.route('/api/admin/interaction-types', methods=['POST'])
@gestor_required
def api_interaction_types_create():
    data = parse_body(InteractionTypeIn)
    db = get_db()
    last = db.execute('SELECT MAX(type_order) AS m FROM interaction_types').fetchone()
    try:
        cur = db.execute('''INSERT INTO interaction_types (name, emoji, color, is_sale_type, is_system, type_order)
                            VALUES (?, ?, ?, ?, 0, ?)''',
                         (data.name, data.emoji or '📝', data.color or 'gray', int(data.is_sale_type), (last['m'] or 0) + 1))
        db.commit()
    except sqlite3.IntegrityError:
        return jsonify({'error': 'Tipo já existe'}), 400
    row = db.execute('SELECT * FROM interaction_types WHERE id = ?', (cur.lastrowid,)).fetchone()
    return jsonify({'type': interaction_type_dict(row)}), 201


@bp.route('/api/admin/interaction-types/<int:id>', methods=['PATCH'])
@gestor_required
def api_interaction_types_update(id):
    data = parse_body(InteractionTypeUpdate)
    db = get_db()
    row = db.execute('SELECT * FROM interaction_types WHERE id = ?', (id,)).fetchone()
    if not row:
        return jsonify({'error': 'Tipo não encontrado'}), 404

    changes = data.model_dump(exclude_unset=True)
    if row['is_system'] and 'name' in changes:
        # Stored interactions reference system types by name
        return jsonify({'error': 'Tipos do sistema não podem ser renomeados'}), 400
    if 'is_sale_type' in changes:
        changes['is_sale_type'] = int(bool(changes['is_sale_type']))

    if changes:
        fields = [f'{k}=?' for k in changes]
        db.execute(f"UPDATE interaction_types SET {', '.join(fields)} WHERE id=?", list(changes.values()) + [id])
        db.commit()

    row = db.execute('SELECT * FROM interaction_types WHERE id = ?', (id,)).fetchone()
    return jsonify({'type': interaction_type_dict(row)})


@bp.route('/api/admin/interaction-types/<int:id>', methods=['DELETE'])
@gestor_required
def api_interaction_types_delete(id):
    db = get_db()
    row = db.execute('SELECT * FROM interaction_types WHERE id = ?', (id,)).fetchone()
    if not row:
        return jsonify({'error': 'Tipo não encontrado'}), 404
    if row['is_system']:
        return jsonify({'error': 'Tipos do sistema não podem ser excluídos'}), 400
    db.execute('DELETE FROM interaction_types WHERE id = ?', (id,))
    db.commit()
    return jsonify({'success': True})


# --- CUSTOM FIELDS ---
@bp.route('/api/custom-fields', methods=['GET'])
@jwt_required()
def api_custom_fields_list():
    db = get_db()
    entity_type = request.args.get('entityType')
    if entity_type and entity_type not in ENTITY_TYPES:
        return jsonify({'error': 'Entidade inválida'}), 400
    query = 'SELECT * FROM custom_fields'
    params = []
    if entity_type:
        query += ' WHERE entity_type = ?'
        params.append(entity_type)
    query += ' ORDER BY field_order, id'
    rows = db.execute(query, params).fetchall()
    return jsonify({'customFields': [custom_field_dict(r) for r in rows]})


@bp.route('/api/admin/custom-fields', methods=['POST'])
@gestor_required
def api_custom_fields_create():
    data = parse_body(CustomFieldIn)
    db = get_db()
    cur = db.execute('''INSERT INTO custom_fields (name, field_type, entity_type, options, formula, required,
                                                   field_order, highlight_color)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)''',
                     (data.name, data.field_type, data.entity_type, data.options, data.formula,
                      int(data.required), data.order, data.highlight_color))
    db.commit()
    row = db.execute('SELECT * FROM custom_fields WHERE id = ?', (cur.lastrowid,)).fetchone()
    return jsonify(custom_field_dict(row)), 201


@bp.route('/api/admin/custom-fields/<int:id>', methods=['PUT', 'PATCH'])
@gestor_required
def api_custom_fields_update(id):
    data = parse_body(CustomFieldIn)
    db = get_db()
    if not db.execute('SELECT 1 FROM custom_fields WHERE id = ?', (id,)).fetchone():
        return jsonify({'error': 'Campo não encontrado'}), 404
    db.execute('''UPDATE custom_fields SET name=?, field_type=?, entity_type=?, options=?, formula=?,
                  required=?, field_order=?, highlight_color=? WHERE id=?''',
               (data.name, data.field_type, data.entity_type, data.options, data.formula,
                int(data.required), data.order, data.highlight_color, id))
    db.commit()
    row = db.execute('SELECT * FROM custom_fields WHERE id = ?', (id,)).fetchone()
    return jsonify(custom_field_dict(row))


@bp.route('/api/admin/custom-fields/<int:id>', methods=['DELETE'])
@gestor_required
def api_custom_fields_delete(id):
    db = get_db()
    if not db.execute('SELECT 1 FROM custom_fields WHERE id = ?', (id,)).fetchone():
        return jsonify({'error': 'Campo não encontrado'}), 404
    db.execute('DELETE FROM custom_fields WHERE id = ?', (id,))
    db.commit()
    return jsonify({'success': True})
