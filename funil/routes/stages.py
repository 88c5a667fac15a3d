import sqlite3
from flask import Blueprint, current_app, jsonify

from funil.database import get_db
from funil.utils import gestor_required, parse_body, stage_dict
from funil.validation import ReorderIn, SetClosedIn, StageIn, StageUpdate

bp = Blueprint('stages', __name__)


@bp.route('/api/admin/pipeline-stages', methods=['GET'])
@gestor_required
def api_stages_list():
    db = get_db()
    rows = db.execute('''
        SELECT s.*, COUNT(c.id) AS client_count
        FROM pipeline_stages s
        LEFT JOIN clients c ON c.current_stage_id = s.id
        GROUP BY s.id
        ORDER BY s.stage_order, s.id
    ''').fetchall()
    return jsonify({'stages': [stage_dict(r, r['client_count']) for r in rows]})


@bp.route('/api/admin/pipeline-stages', methods=['POST'])
@gestor_required
def api_stages_create():
    data = parse_body(StageIn)
    db = get_db()

    order = data.order
    if order is None:
        last = db.execute('SELECT MAX(stage_order) AS m FROM pipeline_stages').fetchone()
        order = (last['m'] if last['m'] is not None else -1) + 1

    cur = db.execute('INSERT INTO pipeline_stages (name, color, stage_order) VALUES (?, ?, ?)',
                     (data.name, data.color, order))
    db.commit()
    stage = db.execute('SELECT * FROM pipeline_stages WHERE id = ?', (cur.lastrowid,)).fetchone()
    return jsonify(stage_dict(stage)), 201


@bp.route('/api/admin/pipeline-stages/<int:id>', methods=['PATCH'])
@gestor_required
def api_stages_update(id):
    data = parse_body(StageUpdate)
    db = get_db()

    if not db.execute('SELECT 1 FROM pipeline_stages WHERE id = ?', (id,)).fetchone():
        return jsonify({'error': 'Fase não encontrada'}), 404

    fields = []
    values = []
    if data.name is not None:
        fields.append('name=?')
        values.append(data.name)
    if data.color is not None:
        fields.append('color=?')
        values.append(data.color)
    if data.order is not None:
        fields.append('stage_order=?')
        values.append(data.order)

    if fields:
        values.append(id)
        db.execute(f"UPDATE pipeline_stages SET {', '.join(fields)} WHERE id=?", values)
        db.commit()

    stage = db.execute('SELECT * FROM pipeline_stages WHERE id = ?', (id,)).fetchone()
    return jsonify(stage_dict(stage))


@bp.route('/api/admin/pipeline-stages/<int:id>', methods=['DELETE'])
@gestor_required
def api_stages_delete(id):
    db = get_db()
    stage = db.execute('SELECT id FROM pipeline_stages WHERE id = ?', (id,)).fetchone()
    if not stage:
        return jsonify({'error': 'Fase não encontrada'}), 404

    count = db.execute('SELECT COUNT(*) AS c FROM clients WHERE current_stage_id = ?', (id,)).fetchone()['c']
    if count > 0:
        return jsonify({'error': f'Não é possível excluir fase com {count} cliente(s) vinculado(s)'}), 400

    db.execute('DELETE FROM pipeline_stages WHERE id = ?', (id,))
    db.commit()
    return jsonify({'success': True})


@bp.route('/api/admin/pipeline-stages/reorder', methods=['PATCH'])
@gestor_required
def api_stages_reorder():
    data = parse_body(ReorderIn)
    db = get_db()
    try:
        with db:
            for item in data.stages:
                db.execute('UPDATE pipeline_stages SET stage_order = ? WHERE id = ?', (item.order, item.id))
    except sqlite3.Error:
        current_app.logger.exception('Erro ao reordenar fases')
        return jsonify({'error': 'Erro ao reordenar fases'}), 500
    return jsonify({'success': True})


@bp.route('/api/admin/pipeline-stages/<int:id>/set-closed', methods=['PATCH'])
@gestor_required
def api_stages_set_closed(id):
    data = parse_body(SetClosedIn)
    db = get_db()

    if not db.execute('SELECT 1 FROM pipeline_stages WHERE id = ?', (id,)).fetchone():
        return jsonify({'error': 'Fase não encontrada'}), 404

    try:
        with db:
            # At most one closing stage: clear the flag everywhere else first
            if data.is_closed_stage:
                db.execute('UPDATE pipeline_stages SET is_closed_stage = 0 WHERE is_closed_stage = 1 AND id != ?', (id,))
            db.execute('UPDATE pipeline_stages SET is_closed_stage = ? WHERE id = ?', (int(data.is_closed_stage), id))
    except sqlite3.Error:
        current_app.logger.exception('Erro ao atualizar isClosedStage da fase %s', id)
        return jsonify({'error': 'Erro ao atualizar fase'}), 500

    stage = db.execute('SELECT * FROM pipeline_stages WHERE id = ?', (id,)).fetchone()
    return jsonify({'stage': stage_dict(stage)})
