import sqlite3
from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import current_user, jwt_required

from funil.database import get_config_value, get_db, record_interaction
from funil.models import STATUS_CHANGE, PlainTransition, SaleTransition
from funil.utils import CLIENT_SELECT, client_dict, is_gestor, parse_body
from funil.validation import MoveIn

bp = Blueprint('pipeline', __name__)


def sale_interaction_type(db):
    return get_config_value(db, 'saleInteractionType', current_app.config['SALE_INTERACTION_TYPE'])


@bp.route('/api/pipeline', methods=['GET'])
@jwt_required()
def api_pipeline_board():
    db = get_db()
    stages = db.execute('SELECT * FROM pipeline_stages ORDER BY stage_order, id').fetchall()

    query = 'SELECT id, name, potential_value, phone, current_stage_id FROM clients WHERE archived_from_pipeline = 0'
    params = []
    # Salespeople only see their own clients on the board
    if not is_gestor():
        query += ' AND assigned_user_id = ?'
        params.append(current_user['id'])
    query += ' ORDER BY updated_at DESC, id'
    clients = db.execute(query, params).fetchall()

    columns = []
    for stage in stages:
        columns.append({
            'id': stage['id'],
            'name': stage['name'],
            'color': stage['color'],
            'isClosedStage': bool(stage['is_closed_stage']),
            'clients': [{
                'id': c['id'],
                'name': c['name'],
                'potentialValue': c['potential_value'] or 0,
                'phone': c['phone'],
                'currentStageId': c['current_stage_id'],
            } for c in clients if c['current_stage_id'] == stage['id']],
        })

    return jsonify({'columns': columns})


@bp.route('/api/pipeline/move', methods=['POST'])
@jwt_required()
def api_pipeline_move():
    data = parse_body(MoveIn)
    db = get_db()

    client = db.execute('SELECT id, name FROM clients WHERE id = ?', (data.client_id,)).fetchone()
    if not client:
        return jsonify({'error': 'Cliente não encontrado'}), 404

    stage = db.execute('SELECT id, name FROM pipeline_stages WHERE id = ?', (data.new_stage_id,)).fetchone()
    if not stage:
        return jsonify({'error': 'Fase não encontrada'}), 404

    sale = data.sale_data
    if sale:
        interaction_type = sale_interaction_type(db)
        description = f"Venda registrada ao mover para {stage['name']}"
        metadata = SaleTransition(
            new_stage=stage['name'], new_stage_id=stage['id'],
            sale_value=sale.sale_value, product_id=sale.product_id,
            product_name=sale.product_name, quantity=sale.quantity, notes=sale.notes,
        )
    else:
        interaction_type = STATUS_CHANGE
        description = f"Status alterado para {stage['name']}"
        metadata = PlainTransition(new_stage=stage['name'], new_stage_id=stage['id'])

    # Stage pointer and its audit row commit together or not at all
    try:
        with db:
            db.execute("UPDATE clients SET current_stage_id = ?, updated_at = datetime('now') WHERE id = ?",
                       (stage['id'], client['id']))
            record_interaction(db, client['id'], current_user['id'], interaction_type, description, metadata.to_json())
    except sqlite3.Error:
        current_app.logger.exception('Erro ao mover cliente %s para fase %s', client['id'], stage['id'])
        return jsonify({'error': 'Erro ao mover cliente'}), 500

    current_app.logger.info('Client %s moved to stage %s by user %s%s', client['id'], stage['id'],
                            current_user['id'], ' with sale' if sale else '')

    row = db.execute(CLIENT_SELECT + ' WHERE c.id = ?', (client['id'],)).fetchone()
    return jsonify({'success': True, 'client': client_dict(row)})
