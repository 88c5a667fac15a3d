import sqlite3
from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import current_user, jwt_required

from funil.database import get_db
from funil.utils import VENDEDOR, gestor_required, is_gestor, parse_body
from funil.validation import ProductIn, ProductUpdate, ProductVisibilityIn

bp = Blueprint('produtos', __name__)


def product_dict(row):
    data = {'id': row['id'], 'name': row['name'], 'stockCode': row['stock_code']}
    if 'client_count' in row.keys():
        data['clientCount'] = row['client_count']
    return data


def visibility_dict(row):
    return {'fieldKey': row['field_key'], 'customFieldId': row['custom_field_id'], 'hiddenForRole': row['hidden_for_role']}


def hidden_fields(db, role):
    """Field keys hidden from ``role``, per product id."""
    hidden = {}
    rows = db.execute('SELECT product_id, field_key FROM product_field_visibility WHERE hidden_for_role = ?', (role,))
    for row in rows.fetchall():
        hidden.setdefault(row['product_id'], set()).add(row['field_key'])
    return hidden


@bp.route('/api/products', methods=['GET'])
@jwt_required()
def api_products_list():
    db = get_db()
    query = '''
        SELECT p.*, COUNT(cp.id) AS client_count FROM products p
        LEFT JOIN client_products cp ON cp.product_id = p.id
    '''
    params = []
    search = request.args.get('search', '').strip()
    if search:
        # LIKE is case-insensitive for ASCII in SQLite
        query += ' WHERE p.name LIKE ? OR p.stock_code LIKE ?'
        params = [f'%{search}%', f'%{search}%']
    query += ' GROUP BY p.id ORDER BY p.name'

    products = [product_dict(r) for r in db.execute(query, params).fetchall()]

    values = db.execute('''
        SELECT v.product_id, f.id AS fieldId, f.name, v.value FROM custom_field_values v
        JOIN custom_fields f ON f.id = v.custom_field_id WHERE v.product_id IS NOT NULL
    ''').fetchall()
    hidden = {} if is_gestor() else hidden_fields(db, current_user['role'])
    by_product = {}
    for v in values:
        if str(v['fieldId']) in hidden.get(v['product_id'], ()):
            continue
        by_product.setdefault(v['product_id'], []).append({'fieldId': v['fieldId'], 'name': v['name'], 'value': v['value']})
    for p in products:
        p['customFieldValues'] = by_product.get(p['id'], [])

    return jsonify({'products': products})


@bp.route('/api/products', methods=['POST'])
@jwt_required()
def api_products_create():
    data = parse_body(ProductIn)
    db = get_db()

    if db.execute('SELECT 1 FROM products WHERE stock_code = ?', (data.stock_code,)).fetchone():
        return jsonify({'error': 'Código do estoque já existe'}), 400

    with db:
        cur = db.execute('INSERT INTO products (name, stock_code) VALUES (?, ?)', (data.name, data.stock_code))
        product_id = cur.lastrowid
        for field_id, value in data.custom_fields.items():
            db.execute('INSERT INTO custom_field_values (custom_field_id, product_id, value) VALUES (?, ?, ?)',
                       (field_id, product_id, value))

    row = db.execute('SELECT * FROM products WHERE id = ?', (product_id,)).fetchone()
    return jsonify({'product': product_dict(row)}), 201


@bp.route('/api/products/<int:id>', methods=['PUT', 'PATCH'])
@jwt_required()
def api_products_update(id):
    data = parse_body(ProductUpdate)
    db = get_db()

    if not db.execute('SELECT 1 FROM products WHERE id = ?', (id,)).fetchone():
        return jsonify({'error': 'Produto não encontrado'}), 404

    if data.stock_code is not None:
        dup = db.execute('SELECT 1 FROM products WHERE stock_code = ? AND id != ?', (data.stock_code, id)).fetchone()
        if dup:
            return jsonify({'error': 'Código do estoque já existe'}), 400
        db.execute('UPDATE products SET stock_code = ? WHERE id = ?', (data.stock_code, id))
    if data.name is not None:
        db.execute('UPDATE products SET name = ? WHERE id = ?', (data.name, id))
    db.commit()

    row = db.execute('SELECT * FROM products WHERE id = ?', (id,)).fetchone()
    return jsonify({'product': product_dict(row)})


@bp.route('/api/products/<int:id>', methods=['DELETE'])
@gestor_required
def api_products_delete(id):
    db = get_db()
    if not db.execute('SELECT 1 FROM products WHERE id = ?', (id,)).fetchone():
        return jsonify({'error': 'Produto não encontrado'}), 404
    db.execute('DELETE FROM products WHERE id = ?', (id,))
    db.commit()
    return jsonify({'success': True})


# --- FIELD VISIBILITY ---
@bp.route('/api/admin/product-visibility/<int:product_id>', methods=['GET'])
@jwt_required()
def api_product_visibility_get(product_id):
    db = get_db()
    if not db.execute('SELECT 1 FROM products WHERE id = ?', (product_id,)).fetchone():
        return jsonify({'error': 'Produto não encontrado'}), 404
    rows = db.execute('SELECT * FROM product_field_visibility WHERE product_id = ? ORDER BY id', (product_id,)).fetchall()
    return jsonify({'visibilities': [visibility_dict(r) for r in rows]})


@bp.route('/api/admin/product-visibility/<int:product_id>', methods=['POST'])
@gestor_required
def api_product_visibility_set(product_id):
    data = parse_body(ProductVisibilityIn)
    db = get_db()
    if not db.execute('SELECT 1 FROM products WHERE id = ?', (product_id,)).fetchone():
        return jsonify({'error': 'Produto não encontrado'}), 404

    product_fields = {str(r['id']) for r in db.execute(
        "SELECT id FROM custom_fields WHERE entity_type = 'PRODUCT'").fetchall()}
    rules = []
    for key in dict.fromkeys(data.hidden_fields):
        if key.startswith('__'):
            rules.append((key, None))
        elif key in product_fields:
            rules.append((key, int(key)))
        else:
            return jsonify({'error': f'Campo inválido: {key}'}), 400

    # The list replaces whatever was hidden before
    try:
        with db:
            db.execute('DELETE FROM product_field_visibility WHERE product_id = ?', (product_id,))
            db.executemany('''INSERT INTO product_field_visibility (product_id, field_key, custom_field_id, hidden_for_role)
                              VALUES (?, ?, ?, ?)''',
                           [(product_id, key, field_id, VENDEDOR) for key, field_id in rules])
    except sqlite3.Error:
        current_app.logger.exception('Erro ao salvar visibilidade do produto %s', product_id)
        return jsonify({'error': 'Erro ao salvar visibilidade'}), 500

    rows = db.execute('SELECT * FROM product_field_visibility WHERE product_id = ? ORDER BY id', (product_id,)).fetchall()
    return jsonify({'success': True, 'visibilities': [visibility_dict(r) for r in rows]})
