from funil.models import NOTE, STATUS_CHANGE
from tests.conftest import OUTRO_VENDEDOR_ID, VENDEDOR_ID, interactions_of


def create(http, headers, **fields):
    payload = {'name': 'Supermercado Bom Preço', 'cnpj': '12.345.678/0001-90', 'potentialValue': 15000}
    payload.update(fields)
    return http.post('/api/clients', headers=headers, json=payload)


def test_create_client_defaults(app, http, vendedor, stages):
    r = create(http, vendedor, assignedUserId=OUTRO_VENDEDOR_ID)
    assert r.status_code == 201
    client = r.get_json()['client']

    assert client['cnpj'] == '12345678000190'
    assert client['currentStageId'] == stages['Prospecção']
    # Salespeople always own what they create
    assert client['assignedUserId'] == VENDEDOR_ID
    assert client['currentStage']['name'] == 'Prospecção'

    rows = interactions_of(app, client['id'])
    assert [(r['type'], r['description']) for r in rows] == [(NOTE, 'Cliente criado no sistema')]


def test_manager_can_assign_client(http, gestor):
    r = create(http, gestor, assignedUserId=OUTRO_VENDEDOR_ID)
    assert r.get_json()['client']['assignedUserId'] == OUTRO_VENDEDOR_ID


def test_duplicate_cnpj_is_rejected(http, gestor):
    assert create(http, gestor).status_code == 201
    r = create(http, gestor, name='Outro', cnpj='12345678000190')
    assert r.status_code == 400
    assert 'CNPJ' in r.get_json()['error']


def test_create_client_validation(http, gestor):
    assert create(http, gestor, name='').status_code == 400
    assert create(http, gestor, email='sem-arroba').status_code == 400
    assert create(http, gestor, potentialValue=-1).status_code == 400


def test_create_client_with_products(http, gestor, make_product):
    product_id = make_product('Arroz Tipo 1 5kg', 'ARZ-005')
    client_id = create(http, gestor, productIds=[product_id]).get_json()['client']['id']

    detail = http.get(f'/api/clients/{client_id}', headers=gestor).get_json()['client']
    assert [p['stockCode'] for p in detail['products']] == ['ARZ-005']
    assert detail['interactions'][0]['type'] == NOTE


def test_search_by_name_and_cnpj(http, gestor, make_client):
    make_client('Mercado Popular')
    make_client('Atacado São Paulo')

    names = [c['name'] for c in http.get('/api/clients?search=Popular', headers=gestor).get_json()['clients']]
    assert names == ['Mercado Popular']

    r = http.get('/api/clients?search=00.000.000/0000-02', headers=gestor)
    assert [c['name'] for c in r.get_json()['clients']] == ['Atacado São Paulo']


def test_salesperson_cannot_open_someone_elses_client(http, vendedor, make_client):
    other = make_client('Outro', user_id=OUTRO_VENDEDOR_ID)
    assert http.get(f'/api/clients/{other}', headers=vendedor).status_code == 403
    assert http.get(f'/api/clients/{other}/interactions', headers=vendedor).status_code == 403
    r = http.patch(f'/api/clients/{other}', headers=vendedor, json={'name': 'Meu'})
    assert r.status_code == 403


def test_update_client(http, vendedor, make_client):
    client_id = make_client('Mercado A')
    r = http.patch(f'/api/clients/{client_id}', headers=vendedor, json={'potentialValue': 2500, 'phone': '11999990000'})
    assert r.status_code == 200
    client = r.get_json()['client']
    assert client['potentialValue'] == 2500
    assert client['phone'] == '11999990000'


def test_delete_client_is_manager_only(app, http, gestor, vendedor, make_client):
    client_id = make_client('Mercado A')
    assert http.delete(f'/api/clients/{client_id}', headers=vendedor).status_code == 403
    assert http.delete(f'/api/clients/{client_id}', headers=gestor).status_code == 200
    assert http.get(f'/api/clients/{client_id}', headers=gestor).status_code == 404


def test_archive_toggle_hides_client_from_board(app, http, gestor, make_client):
    client_id = make_client('Mercado A')

    r = http.patch(f'/api/clients/{client_id}/archive', headers=gestor)
    assert r.get_json()['archived'] is True
    board = http.get('/api/pipeline', headers=gestor).get_json()['columns']
    assert all(card['id'] != client_id for col in board for card in col['clients'])

    r = http.patch(f'/api/clients/{client_id}/archive', headers=gestor)
    assert r.get_json()['archived'] is False

    rows = interactions_of(app, client_id)
    assert [r['type'] for r in rows] == [STATUS_CHANGE, STATUS_CHANGE]
    assert 'arquivado' in rows[0]['description']
    assert 'restaurado' in rows[1]['description']


def test_add_interaction(http, vendedor, make_client):
    client_id = make_client('Mercado A')
    r = http.post(f'/api/clients/{client_id}/interactions', headers=vendedor,
                  json={'type': 'Ligação', 'description': 'Cliente pediu retorno na segunda'})
    assert r.status_code == 201
    interaction = r.get_json()['interaction']
    assert interaction['type'] == 'Ligação'
    assert interaction['metadata'] is None
    assert interaction['user']['id'] == VENDEDOR_ID


def test_interaction_with_sale_metadata_is_normalized(http, gestor, make_client):
    client_id = make_client('Mercado A')
    r = http.post(f'/api/clients/{client_id}/interactions', headers=gestor, json={
        'type': 'Venda', 'description': 'Venda por telefone',
        'metadata': {'saleValue': 800, 'productId': 3, 'quantity': 4},
    })
    meta = r.get_json()['interaction']['metadata']
    assert meta['kind'] == 'sale'
    assert meta['saleValue'] == 800


def test_interactions_newest_first(http, gestor, make_client):
    client_id = make_client('Mercado A')
    for text in ('primeira', 'segunda'):
        http.post(f'/api/clients/{client_id}/interactions', headers=gestor, json={'type': 'Nota', 'description': text})

    rows = http.get(f'/api/clients/{client_id}/interactions', headers=gestor).get_json()['interactions']
    assert [r['description'] for r in rows] == ['segunda', 'primeira']


def test_infinite_potential_value_is_rejected(http, gestor):
    r = http.post('/api/clients', headers=gestor, data='{"name": "Mercado A", "cnpj": "1", "potentialValue": 1e999}',
                  content_type='application/json')
    assert r.status_code == 400
    assert http.get('/api/clients', headers=gestor).get_json()['clients'] == []


def test_update_rejects_null_for_required_fields(http, vendedor, make_client):
    client_id = make_client('Mercado A', value=1500)
    assert http.patch(f'/api/clients/{client_id}', headers=vendedor, json={'name': None}).status_code == 400
    assert http.patch(f'/api/clients/{client_id}', headers=vendedor, json={'potentialValue': None}).status_code == 400
    assert http.patch(f'/api/clients/{client_id}', headers=vendedor, json={'cnpj': None}).status_code == 400

    client = http.get(f'/api/clients/{client_id}', headers=vendedor).get_json()['client']
    assert client['name'] == 'Mercado A'
    assert client['potentialValue'] == 1500


def test_interaction_metadata_keeps_extra_keys(http, gestor, make_client):
    client_id = make_client('Mercado A')
    r = http.post(f'/api/clients/{client_id}/interactions', headers=gestor, json={
        'type': 'Venda', 'description': 'Venda a prazo',
        'metadata': {'saleValue': 800, 'paymentTerms': '30 dias'},
    })
    assert r.status_code == 201
    meta = r.get_json()['interaction']['metadata']
    assert meta['kind'] == 'sale'
    assert meta['paymentTerms'] == '30 dias'

    rows = http.get(f'/api/clients/{client_id}/interactions', headers=gestor).get_json()['interactions']
    assert rows[0]['metadata']['paymentTerms'] == '30 dias'
