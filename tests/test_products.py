from funil.database import get_db


def product_field(http, gestor, name):
    r = http.post('/api/admin/custom-fields', headers=gestor, json={
        'name': name, 'fieldType': 'number', 'entityType': 'PRODUCT',
    })
    return r.get_json()['id']


def add_product(http, gestor, custom_fields):
    r = http.post('/api/products', headers=gestor, json={
        'name': 'Feijão Carioca 1kg', 'stockCode': 'FEI-001', 'customFields': custom_fields,
    })
    return r.get_json()['product']['id']


def field_names(http, headers):
    products = http.get('/api/products', headers=headers).get_json()['products']
    return [v['name'] for v in products[0]['customFieldValues']]


def test_hidden_fields_are_left_out_for_salespeople(http, gestor, vendedor):
    cost = product_field(http, gestor, 'Custo')
    price = product_field(http, gestor, 'Preço de tabela')
    product_id = add_product(http, gestor, {str(cost): '4.10', str(price): '7.90'})

    r = http.post(f'/api/admin/product-visibility/{product_id}', headers=gestor,
                  json={'hiddenFields': [cost, '__stockCode']})
    assert r.status_code == 200
    assert [v['fieldKey'] for v in r.get_json()['visibilities']] == [str(cost), '__stockCode']

    assert field_names(http, vendedor) == ['Preço de tabela']
    assert sorted(field_names(http, gestor)) == ['Custo', 'Preço de tabela']


def test_visibility_list(http, gestor, vendedor):
    cost = product_field(http, gestor, 'Custo')
    product_id = add_product(http, gestor, {str(cost): '4.10'})
    http.post(f'/api/admin/product-visibility/{product_id}', headers=gestor, json={'hiddenFields': [str(cost)]})

    r = http.get(f'/api/admin/product-visibility/{product_id}', headers=vendedor)
    assert r.status_code == 200
    assert r.get_json()['visibilities'] == [
        {'fieldKey': str(cost), 'customFieldId': cost, 'hiddenForRole': 'VENDEDOR'},
    ]


def test_saving_replaces_previous_list(http, gestor, vendedor):
    cost = product_field(http, gestor, 'Custo')
    margin = product_field(http, gestor, 'Margem')
    product_id = add_product(http, gestor, {str(cost): '4.10', str(margin): '30'})
    url = f'/api/admin/product-visibility/{product_id}'

    http.post(url, headers=gestor, json={'hiddenFields': [cost, margin]})
    assert field_names(http, vendedor) == []

    r = http.post(url, headers=gestor, json={'hiddenFields': [margin, margin]})
    assert [v['fieldKey'] for v in r.get_json()['visibilities']] == [str(margin)]
    assert field_names(http, vendedor) == ['Custo']

    http.post(url, headers=gestor, json={'hiddenFields': []})
    assert http.get(url, headers=gestor).get_json()['visibilities'] == []


def test_saving_visibility_is_manager_only(http, gestor, vendedor, make_product):
    product_id = make_product('Açúcar Refinado 1kg', 'ACU-001')
    r = http.post(f'/api/admin/product-visibility/{product_id}', headers=vendedor, json={'hiddenFields': []})
    assert r.status_code == 403


def test_visibility_rejects_unknown_fields(http, gestor, make_product):
    product_id = make_product('Açúcar Refinado 1kg', 'ACU-001')
    client_field = http.post('/api/admin/custom-fields', headers=gestor, json={
        'name': 'Segmento', 'fieldType': 'text', 'entityType': 'CLIENT',
    }).get_json()['id']
    url = f'/api/admin/product-visibility/{product_id}'

    assert http.post(url, headers=gestor, json={'hiddenFields': ['preco']}).status_code == 400
    assert http.post(url, headers=gestor, json={'hiddenFields': [client_field]}).status_code == 400
    assert http.post(url, headers=gestor, json={}).status_code == 400
    assert http.get(url, headers=gestor).get_json()['visibilities'] == []


def test_visibility_of_unknown_product(http, gestor):
    assert http.get('/api/admin/product-visibility/9999', headers=gestor).status_code == 404
    r = http.post('/api/admin/product-visibility/9999', headers=gestor, json={'hiddenFields': []})
    assert r.status_code == 404


def test_deleting_product_drops_its_visibility(app, http, gestor):
    cost = product_field(http, gestor, 'Custo')
    product_id = add_product(http, gestor, {str(cost): '4.10'})
    http.post(f'/api/admin/product-visibility/{product_id}', headers=gestor, json={'hiddenFields': [cost]})

    assert http.delete(f'/api/products/{product_id}', headers=gestor).status_code == 200
    with app.app_context():
        assert get_db().execute('SELECT COUNT(*) FROM product_field_visibility').fetchone()[0] == 0
