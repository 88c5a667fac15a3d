import json
import sqlite3
from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import current_user, jwt_required

from funil.database import first_stage, get_db, record_interaction
from funil.models import NOTE, STATUS_CHANGE, metadata_dict, parse_metadata
from funil.utils import CLIENT_SELECT, client_dict, gestor_required, is_gestor, only_digits, parse_body
from funil.validation import ClientIn, ClientUpdate, InteractionIn

bp = Blueprint('clientes', __name__)


def interaction_dict(row):
    return {
        'id': row['id'],
        'type': row['type'],
        'description': row['description'],
        'metadata': metadata_dict(row['metadata']),
        'clientId': row['client_id'],
        'user': {'id': row['user_id'], 'name': row['user_name']} if row['user_id'] else None,
        'createdAt': row['created_at'],
    }


def load_interactions(db, client_id):
    return db.execute('''
        SELECT i.*, u.name AS user_name FROM interactions i
        LEFT JOIN users u ON u.id = i.user_id
        WHERE i.client_id = ?
        ORDER BY i.created_at DESC, i.id DESC
    ''', (client_id,)).fetchall()


def can_access(client_row):
    return is_gestor() or client_row['assigned_user_id'] == current_user['id']


@bp.route('/api/clients', methods=['GET'])
@jwt_required()
def api_clients_list():
    db = get_db()

    # Everyone sees every client here (avoids duplicate registrations); the board is scoped
    query = CLIENT_SELECT + ' WHERE 1=1'
    params = []

    search = request.args.get('search')
    if search:
        digits = only_digits(search)
        if digits:
            query += ' AND (c.name LIKE ? OR c.cnpj LIKE ?)'
            params += [f'%{search}%', f'%{digits}%']
        else:
            query += ' AND c.name LIKE ?'
            params.append(f'%{search}%')

    stage_id = request.args.get('stageId', type=int)
    if stage_id:
        query += ' AND c.current_stage_id = ?'
        params.append(stage_id)

    query += ' ORDER BY c.potential_value DESC'
    rows = db.execute(query, params).fetchall()
    return jsonify({'clients': [client_dict(r) for r in rows]})


@bp.route('/api/clients', methods=['POST'])
@jwt_required()
def api_clients_create():
    data = parse_body(ClientIn)
    db = get_db()

    cnpj = only_digits(data.cnpj)
    if not cnpj:
        return jsonify({'error': 'CNPJ inválido'}), 400
    if db.execute('SELECT 1 FROM clients WHERE cnpj = ?', (cnpj,)).fetchone():
        return jsonify({'error': 'CNPJ já cadastrado'}), 400

    # Salespeople can only create clients for themselves
    assigned_user_id = data.assigned_user_id if is_gestor() and data.assigned_user_id else current_user['id']

    stage_id = data.current_stage_id
    if stage_id is None:
        stage = first_stage(db)
        if not stage:
            return jsonify({'error': 'Nenhuma fase configurada no funil'}), 400
        stage_id = stage['id']
    elif not db.execute('SELECT 1 FROM pipeline_stages WHERE id = ?', (stage_id,)).fetchone():
        return jsonify({'error': 'Fase não encontrada'}), 404

    try:
        with db:
            cur = db.execute('''INSERT INTO clients (name, cnpj, phone, email, address, potential_value,
                                                     current_stage_id, assigned_user_id)
                                VALUES (?, ?, ?, ?, ?, ?, ?, ?)''',
                             (data.name, cnpj, data.phone or None, data.email, data.address,
                              data.potential_value, stage_id, assigned_user_id))
            client_id = cur.lastrowid

            for field_id, value in data.custom_fields.items():
                db.execute('INSERT INTO custom_field_values (custom_field_id, client_id, value) VALUES (?, ?, ?)',
                           (field_id, client_id, value))

            for product_id in data.product_ids:
                db.execute('INSERT OR IGNORE INTO client_products (client_id, product_id, quantity) VALUES (?, ?, 1)',
                           (client_id, product_id))

            record_interaction(db, client_id, current_user['id'], NOTE, 'Cliente criado no sistema')
    except sqlite3.IntegrityError as e:
        return jsonify({'error': f'Dados inválidos: {e}'}), 400

    row = db.execute(CLIENT_SELECT + ' WHERE c.id = ?', (client_id,)).fetchone()
    return jsonify({'client': client_dict(row)}), 201


@bp.route('/api/clients/<int:id>', methods=['GET'])
@jwt_required()
def api_clients_get(id):
    db = get_db()
    row = db.execute(CLIENT_SELECT + ' WHERE c.id = ?', (id,)).fetchone()
    if not row:
        return jsonify({'error': 'Cliente não encontrado'}), 404
    if not can_access(row):
        return jsonify({'error': 'Sem permissão para ver este cliente'}), 403

    client = client_dict(row)
    client['interactions'] = [interaction_dict(i) for i in load_interactions(db, id)]
    client['products'] = [dict(p) for p in db.execute('''
        SELECT p.id, p.name, p.stock_code AS stockCode, cp.quantity FROM client_products cp
        JOIN products p ON p.id = cp.product_id WHERE cp.client_id = ? ORDER BY p.name
    ''', (id,)).fetchall()]
    client['customFieldValues'] = [dict(v) for v in db.execute('''
        SELECT f.id AS fieldId, f.name, f.field_type AS fieldType, v.value FROM custom_field_values v
        JOIN custom_fields f ON f.id = v.custom_field_id WHERE v.client_id = ? ORDER BY f.field_order
    ''', (id,)).fetchall()]
    client['tasks'] = [dict(t) for t in db.execute('''
        SELECT id, title, due_date AS dueDate, due_time AS dueTime, status FROM tasks
        WHERE client_id = ? ORDER BY due_date
    ''', (id,)).fetchall()]
    return jsonify({'client': client})


@bp.route('/api/clients/<int:id>', methods=['PUT', 'PATCH'])
@jwt_required()
def api_clients_update(id):
    data = parse_body(ClientUpdate)
    db = get_db()

    row = db.execute('SELECT * FROM clients WHERE id = ?', (id,)).fetchone()
    if not row:
        return jsonify({'error': 'Cliente não encontrado'}), 404
    if not can_access(row):
        return jsonify({'error': 'Sem permissão para editar este cliente'}), 403

    changes = data.model_dump(exclude_unset=True)
    columns = {
        'name': 'name', 'phone': 'phone', 'email': 'email', 'address': 'address',
        'potential_value': 'potential_value',
    }
    fields = []
    values = []
    for key, column in columns.items():
        if key in changes:
            fields.append(f'{column}=?')
            values.append(changes[key])
    if 'cnpj' in changes:
        cnpj = only_digits(changes['cnpj'])
        if not cnpj:
            return jsonify({'error': 'CNPJ inválido'}), 400
        dup = db.execute('SELECT 1 FROM clients WHERE cnpj = ? AND id != ?', (cnpj, id)).fetchone()
        if dup:
            return jsonify({'error': 'CNPJ já cadastrado'}), 400
        fields.append('cnpj=?')
        values.append(cnpj)
    if 'assigned_user_id' in changes and is_gestor():
        fields.append('assigned_user_id=?')
        values.append(changes['assigned_user_id'])

    if fields:
        values.append(id)
        db.execute(f"UPDATE clients SET {', '.join(fields)}, updated_at=datetime('now') WHERE id=?", values)
        db.commit()

    row = db.execute(CLIENT_SELECT + ' WHERE c.id = ?', (id,)).fetchone()
    return jsonify({'client': client_dict(row)})


@bp.route('/api/clients/<int:id>', methods=['DELETE'])
@gestor_required
def api_clients_delete(id):
    db = get_db()
    if not db.execute('SELECT 1 FROM clients WHERE id = ?', (id,)).fetchone():
        return jsonify({'error': 'Cliente não encontrado'}), 404
    db.execute('DELETE FROM clients WHERE id = ?', (id,))
    db.commit()
    current_app.logger.info('Client %s deleted by user %s', id, current_user['id'])
    return jsonify({'success': True})


@bp.route('/api/clients/<int:id>/archive', methods=['PATCH'])
@jwt_required()
def api_clients_archive(id):
    db = get_db()
    client = db.execute('SELECT id, name, archived_from_pipeline FROM clients WHERE id = ?', (id,)).fetchone()
    if not client:
        return jsonify({'error': 'Cliente não encontrado'}), 404

    archived = not client['archived_from_pipeline']
    if archived:
        description = f'Cliente "{client["name"]}" foi arquivado do pipeline de vendas'
    else:
        description = f'Cliente "{client["name"]}" foi restaurado ao pipeline de vendas'

    try:
        with db:
            db.execute("UPDATE clients SET archived_from_pipeline = ?, updated_at = datetime('now') WHERE id = ?",
                       (int(archived), id))
            record_interaction(db, id, current_user['id'], STATUS_CHANGE, description)
    except sqlite3.Error:
        current_app.logger.exception('Erro ao arquivar/restaurar cliente %s', id)
        return jsonify({'error': 'Erro ao processar operação'}), 500

    return jsonify({
        'archived': archived,
        'message': 'Cliente arquivado do pipeline' if archived else 'Cliente restaurado ao pipeline',
    })


@bp.route('/api/clients/<int:id>/interactions', methods=['GET'])
@jwt_required()
def api_clients_interactions(id):
    db = get_db()
    client = db.execute('SELECT id, assigned_user_id FROM clients WHERE id = ?', (id,)).fetchone()
    if not client:
        return jsonify({'error': 'Cliente não encontrado'}), 404
    if not can_access(client):
        return jsonify({'error': 'Sem permissão para ver este cliente'}), 403
    return jsonify({'interactions': [interaction_dict(i) for i in load_interactions(db, id)]})


@bp.route('/api/clients/<int:id>/interactions', methods=['POST'])
@jwt_required()
def api_clients_interaction_create(id):
    data = parse_body(InteractionIn)
    db = get_db()

    client = db.execute('SELECT id, assigned_user_id FROM clients WHERE id = ?', (id,)).fetchone()
    if not client:
        return jsonify({'error': 'Cliente não encontrado'}), 404
    if not can_access(client):
        return jsonify({'error': 'Sem permissão para interagir com este cliente'}), 403

    metadata = None
    if data.metadata:
        parsed = parse_metadata(data.metadata)
        if parsed is not None:
            metadata = parsed.to_json()
        else:
            # Free-form notes are kept as given; readers ignore shapes they do not know
            metadata = data.metadata if isinstance(data.metadata, str) else json.dumps(data.metadata, ensure_ascii=False)

    with db:
        interaction_id = record_interaction(db, id, current_user['id'], data.type, data.description, metadata)

    row = db.execute('''SELECT i.*, u.name AS user_name FROM interactions i
                        LEFT JOIN users u ON u.id = i.user_id WHERE i.id = ?''', (interaction_id,)).fetchone()
    return jsonify({'interaction': interaction_dict(row)}), 201
