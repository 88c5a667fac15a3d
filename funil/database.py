import os
import sqlite3
from flask import current_app, g
from werkzeug.security import generate_password_hash

DATABASE = 'funil.db'

DEFAULT_STAGES = [
    # name, color, order, is_closed_stage
    ('Prospecção', '#3B82F6', 1, 0),
    ('Negociação', '#F59E0B', 2, 0),
    ('Proposta Enviada', '#8B5CF6', 3, 0),
    ('Fechamento', '#10B981', 4, 1),
]

DEFAULT_INTERACTION_TYPES = [
    # name, emoji, color, is_sale_type
    ('Nota', '📝', 'gray', 0),
    ('Ligação', '📞', 'blue', 0),
    ('Reunião', '🤝', 'purple', 0),
    ('Email', '📧', 'yellow', 0),
    ('WhatsApp', '💬', 'green', 0),
    ('Venda', '💰', 'emerald', 1),
]


def get_db():
    db = getattr(g, '_database', None)
    if db is None:
        db = g._database = sqlite3.connect(current_app.config.get('DATABASE', DATABASE))
        db.row_factory = sqlite3.Row
        db.execute('PRAGMA foreign_keys = ON')
    return db


def close_connection(exception):
    db = g.pop('_database', None)
    if db is not None:
        db.close()


def init_db(app):
    with app.app_context():
        db = get_db()
        with app.open_resource('schema.sql', mode='r') as f:
            db.executescript(f.read())

        if not db.execute('SELECT 1 FROM pipeline_stages LIMIT 1').fetchone():
            db.executemany('INSERT INTO pipeline_stages (name, color, stage_order, is_closed_stage) VALUES (?, ?, ?, ?)',
                           DEFAULT_STAGES)

        if not db.execute('SELECT 1 FROM interaction_types LIMIT 1').fetchone():
            db.executemany('''INSERT INTO interaction_types (name, emoji, color, is_sale_type, is_system, type_order)
                              VALUES (?, ?, ?, ?, 1, ?)''',
                           [(n, e, c, s, i) for i, (n, e, c, s) in enumerate(DEFAULT_INTERACTION_TYPES)])

        # Ensure a manager account exists
        if not db.execute("SELECT 1 FROM users WHERE role = 'GESTOR' LIMIT 1").fetchone():
            email = os.environ.get('ADMIN_EMAIL', 'admin@funil.local')
            password = os.environ.get('ADMIN_PASSWORD', 'admin')
            db.execute("INSERT INTO users (name, email, password, role) VALUES (?, ?, ?, 'GESTOR')",
                       ('Administrador', email, generate_password_hash(password)))
            app.logger.info('Manager account %s created', email)

        db.commit()


def first_stage(db):
    return db.execute('SELECT * FROM pipeline_stages ORDER BY stage_order, id LIMIT 1').fetchone()


def sale_type_names(db):
    rows = db.execute('SELECT name FROM interaction_types WHERE is_sale_type = 1').fetchall()
    return {row['name'] for row in rows}


def get_config_value(db, key, default=None):
    row = db.execute('SELECT value FROM system_config WHERE key = ?', (key,)).fetchone()
    return row['value'] if row and row['value'] else default


def record_interaction(db, client_id, user_id, type_, description, metadata=None):
    """Append one row to the interaction log.

    Does not commit: callers run it inside their own ``with db:`` block so the
    interaction lands together with the change it documents.
    """
    cur = db.execute('''INSERT INTO interactions (type, description, metadata, client_id, user_id, created_at)
                        VALUES (?, ?, ?, ?, ?, datetime('now'))''',
                     (type_, description, metadata, client_id, user_id))
    return cur.lastrowid
