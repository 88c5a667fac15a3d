from tests.conftest import GESTOR_ID, VENDEDOR_ID


def test_login_and_me(http):
    r = http.post('/api/auth/login', json={'email': 'JOAO@funil.local', 'password': '123456'})
    assert r.status_code == 200
    body = r.get_json()
    assert body['user']['role'] == 'VENDEDOR'
    assert body['accessToken']

    me = http.get('/api/auth/me', headers={'Authorization': f"Bearer {body['accessToken']}"})
    assert me.get_json()['user']['email'] == 'joao@funil.local'


def test_login_wrong_password(http):
    r = http.post('/api/auth/login', json={'email': 'joao@funil.local', 'password': 'errada'})
    assert r.status_code == 401


def test_deactivated_user_is_locked_out(http, gestor, vendedor):
    r = http.patch(f'/api/admin/users/{VENDEDOR_ID}', headers=gestor, json={'isActive': False})
    assert r.status_code == 200

    assert http.post('/api/auth/login', json={'email': 'joao@funil.local', 'password': '123456'}).status_code == 403
    # Tokens issued before deactivation stop working too
    assert http.get('/api/pipeline', headers=vendedor).status_code == 401


def test_manager_cannot_deactivate_self(http, gestor):
    r = http.patch(f'/api/admin/users/{GESTOR_ID}', headers=gestor, json={'isActive': False})
    assert r.status_code == 400
    assert http.delete(f'/api/admin/users/{GESTOR_ID}', headers=gestor).status_code == 400


def test_create_user(http, gestor):
    r = http.post('/api/admin/users', headers=gestor, json={
        'name': 'Carlos', 'email': 'Carlos@Funil.local', 'password': 'segredo1', 'role': 'VENDEDOR',
    })
    assert r.status_code == 201
    assert r.get_json()['user']['email'] == 'carlos@funil.local'

    dup = http.post('/api/admin/users', headers=gestor, json={
        'name': 'Carlos 2', 'email': 'carlos@funil.local', 'password': 'segredo1',
    })
    assert dup.status_code == 400

    assert http.post('/api/auth/login', json={'email': 'carlos@funil.local', 'password': 'segredo1'}).status_code == 200


def test_admin_endpoints_are_manager_only(http, vendedor):
    assert http.get('/api/admin/users', headers=vendedor).status_code == 403
    assert http.post('/api/admin/system-config', headers=vendedor, json={'key': 'x', 'value': 'y'}).status_code == 403
    assert http.get('/api/reports', headers=vendedor).status_code == 403


def test_system_config_masks_api_key(http, gestor):
    http.post('/api/admin/system-config', headers=gestor, json={'key': 'aiApiKey', 'value': 'gsk_abcdef123456'})
    http.post('/api/admin/system-config', headers=gestor, json={'key': 'companyName', 'value': 'Distribuidora X'})

    config = http.get('/api/admin/system-config?key=aiApiKey', headers=gestor).get_json()['config']
    assert config['value'].endswith('3456')
    assert 'gsk_' not in config['value']

    company = http.get('/api/admin/system-config?key=companyName', headers=gestor).get_json()['config']
    assert company['value'] == 'Distribuidora X'


def test_interaction_types(http, gestor):
    types = http.get('/api/admin/interaction-types', headers=gestor).get_json()['types']
    venda = next(t for t in types if t['name'] == 'Venda')
    assert venda['isSaleType'] is True

    assert http.delete(f"/api/admin/interaction-types/{venda['id']}", headers=gestor).status_code == 400
    assert http.patch(f"/api/admin/interaction-types/{venda['id']}", headers=gestor,
                      json={'name': 'Pedido'}).status_code == 400

    r = http.post('/api/admin/interaction-types', headers=gestor, json={'name': 'Visita', 'emoji': '🚗'})
    assert r.status_code == 201
    new_id = r.get_json()['type']['id']
    assert http.post('/api/admin/interaction-types', headers=gestor, json={'name': 'Visita'}).status_code == 400
    assert http.delete(f'/api/admin/interaction-types/{new_id}', headers=gestor).status_code == 200


def test_custom_fields(http, gestor, vendedor):
    r = http.post('/api/admin/custom-fields', headers=gestor, json={
        'name': 'Segmento', 'fieldType': 'select', 'entityType': 'CLIENT', 'options': 'Varejo,Atacado',
    })
    assert r.status_code == 201
    field_id = r.get_json()['id']

    bad = http.post('/api/admin/custom-fields', headers=gestor, json={
        'name': 'X', 'fieldType': 'color', 'entityType': 'CLIENT',
    })
    assert bad.status_code == 400

    fields = http.get('/api/custom-fields?entityType=CLIENT', headers=vendedor).get_json()['customFields']
    assert [f['name'] for f in fields] == ['Segmento']

    client = http.post('/api/clients', headers=vendedor, json={
        'name': 'Mercado A', 'cnpj': '11222333000144', 'customFields': {str(field_id): 'Varejo'},
    }).get_json()['client']
    detail = http.get(f"/api/clients/{client['id']}", headers=vendedor).get_json()['client']
    assert detail['customFieldValues'][0]['value'] == 'Varejo'


def test_products(http, gestor):
    r = http.post('/api/products', headers=gestor, json={'name': 'Arroz Tipo 1 5kg', 'stockCode': 'ARZ-005'})
    assert r.status_code == 201
    assert http.post('/api/products', headers=gestor, json={'name': 'Arroz', 'stockCode': 'ARZ-005'}).status_code == 400
    assert http.post('/api/products', headers=gestor, json={'name': 'Ab', 'stockCode': 'X'}).status_code == 400

    found = http.get('/api/products?search=arz', headers=gestor).get_json()['products']
    assert [p['stockCode'] for p in found] == ['ARZ-005']


def test_health(http):
    r = http.get('/api/health')
    assert r.status_code == 200
    assert r.get_json() == {'status': 'ok'}


def test_unknown_api_route_is_json(http, gestor):
    r = http.get('/api/nao-existe', headers=gestor)
    assert r.status_code == 404
    assert 'error' in r.get_json()


def test_interaction_type_rejects_null_name(http, gestor):
    type_id = http.post('/api/admin/interaction-types', headers=gestor, json={'name': 'Visita'}).get_json()['type']['id']
    r = http.patch(f'/api/admin/interaction-types/{type_id}', headers=gestor, json={'name': None})
    assert r.status_code == 400
    types = http.get('/api/admin/interaction-types', headers=gestor).get_json()['types']
    assert 'Visita' in [t['name'] for t in types]


def test_user_options_are_manager_only(http, gestor, vendedor):
    assert http.get('/api/users', headers=vendedor).status_code == 403
    users = http.get('/api/users', headers=gestor).get_json()['users']
    assert {u['name'] for u in users} >= {'João Silva', 'Maria Santos'}
