"""
Pytest configuration: a fresh app and sqlite file per test.

The manager account is the one ``init_db`` seeds (id 1); two salespeople are
added on top. Requests authenticate with a Bearer token.
"""
import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from funil import create_app
from funil.database import get_db, init_db
from funil.pipeline.api import PipelineAPI, PipelineAPIError

GESTOR_ID = 1
VENDEDOR_ID = 2
OUTRO_VENDEDOR_ID = 3


@pytest.fixture
def app(tmp_path, monkeypatch):
    for var in ('ADMIN_EMAIL', 'ADMIN_PASSWORD', 'AI_PROVIDER', 'AI_MODEL', 'AI_API_KEY', 'DATABASE_PATH'):
        monkeypatch.delenv(var, raising=False)

    app = create_app({
        'TESTING': True,
        'DATABASE': str(tmp_path / 'test.db'),
        'JWT_SECRET_KEY': 'test-jwt-secret-key-long-enough-for-hs256',
    })
    init_db(app)

    with app.app_context():
        db = get_db()
        db.executemany("INSERT INTO users (name, email, password, role) VALUES (?, ?, ?, 'VENDEDOR')", [
            ('João Silva', 'joao@funil.local', generate_password_hash('123456')),
            ('Maria Santos', 'maria@funil.local', generate_password_hash('123456')),
        ])
        db.commit()

    yield app


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def auth(app):
    def make(user_id):
        with app.app_context():
            token = create_access_token(identity=str(user_id))
        return {'Authorization': f'Bearer {token}'}
    return make


@pytest.fixture
def gestor(auth):
    return auth(GESTOR_ID)


@pytest.fixture
def vendedor(auth):
    return auth(VENDEDOR_ID)


@pytest.fixture
def stages(app):
    with app.app_context():
        rows = get_db().execute('SELECT id, name FROM pipeline_stages').fetchall()
        return {r['name']: r['id'] for r in rows}


@pytest.fixture
def make_client(app, stages):
    counter = {'n': 0}

    def make(name, stage='Prospecção', user_id=VENDEDOR_ID, value=1000, archived=False):
        counter['n'] += 1
        with app.app_context():
            db = get_db()
            cur = db.execute('''INSERT INTO clients (name, cnpj, potential_value, current_stage_id,
                                                     assigned_user_id, archived_from_pipeline)
                                VALUES (?, ?, ?, ?, ?, ?)''',
                             (name, f'{counter["n"]:014d}', value, stages[stage], user_id, int(archived)))
            db.commit()
            return cur.lastrowid
    return make


@pytest.fixture
def make_product(app):
    def make(name, code):
        with app.app_context():
            db = get_db()
            cur = db.execute('INSERT INTO products (name, stock_code) VALUES (?, ?)', (name, code))
            db.commit()
            return cur.lastrowid
    return make


def interactions_of(app, client_id):
    with app.app_context():
        return [dict(r) for r in get_db().execute(
            'SELECT * FROM interactions WHERE client_id = ? ORDER BY id', (client_id,)).fetchall()]


def stage_of(app, client_id):
    with app.app_context():
        return get_db().execute('SELECT current_stage_id FROM clients WHERE id = ?', (client_id,)).fetchone()[0]


class FlaskPipelineAPI(PipelineAPI):
    """PipelineAPI that talks to the Flask test client instead of the network."""

    def __init__(self, client, headers):
        super().__init__('http://testserver')
        self.client = client
        self.headers = headers
        self.calls = []

    def _request(self, method, path, **kwargs):
        self.calls.append((method, path, kwargs.get('json')))
        r = self.client.open(path, method=method, headers=self.headers,
                             json=kwargs.get('json'), query_string=kwargs.get('params'))
        data = r.get_json(silent=True) or {}
        if r.status_code >= 400:
            raise PipelineAPIError(data.get('error') or f'HTTP {r.status_code}', status=r.status_code)
        return data

    def move_calls(self):
        return [c for c in self.calls if c[1] == '/api/pipeline/move']


@pytest.fixture
def api(http, gestor):
    return FlaskPipelineAPI(http, gestor)
