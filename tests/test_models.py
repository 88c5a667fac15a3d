import json

from funil.models import PlainTransition, SaleTransition, metadata_dict, parse_metadata, sale_value_of


def test_plain_transition_serializes_with_kind_and_camel_case():
    meta = PlainTransition(new_stage='Negociação', new_stage_id=2)
    assert json.loads(meta.to_json()) == {'kind': 'transition', 'newStage': 'Negociação', 'newStageId': 2}


def test_sale_transition_keeps_product_id_type():
    meta = SaleTransition(sale_value=500, product_id='P1', quantity=2)
    data = json.loads(meta.to_json())
    assert data['kind'] == 'sale'
    assert data['productId'] == 'P1'
    assert data['saleValue'] == 500
    assert 'newStageId' not in data


def test_parse_tagged_rows():
    assert isinstance(parse_metadata('{"kind": "transition", "newStage": "A", "newStageId": 1}'), PlainTransition)
    assert isinstance(parse_metadata({'kind': 'sale', 'saleValue': 10}), SaleTransition)


def test_parse_untagged_rows_by_shape():
    sale = parse_metadata('{"newStage": "Fechamento", "newStageId": 4, "saleValue": 300, "productId": 7}')
    assert isinstance(sale, SaleTransition)
    assert sale.product_id == 7

    plain = parse_metadata('{"newStage": "Negociação", "newStageId": 2}')
    assert isinstance(plain, PlainTransition)


def test_parse_rejects_garbage():
    assert parse_metadata(None) is None
    assert parse_metadata('') is None
    assert parse_metadata('not json') is None
    assert parse_metadata('[1, 2]') is None
    assert parse_metadata('{"foo": "bar"}') is None
    assert parse_metadata('{"kind": "sale", "saleValue": "muito"}') is None
    assert parse_metadata('{"kind": "other"}') is None


def test_sale_value_of():
    assert sale_value_of('{"kind": "sale", "saleValue": 99.5}') == 99.5
    assert sale_value_of('{"kind": "transition", "newStage": "A", "newStageId": 1}') is None
    assert sale_value_of('{broken') is None


def test_metadata_dict():
    assert metadata_dict(None) is None
    assert metadata_dict('{"newStage": "A", "newStageId": 1}') == {
        'kind': 'transition', 'newStage': 'A', 'newStageId': 1,
    }


def test_non_finite_sale_value_is_not_a_sale():
    assert parse_metadata('{"kind": "sale", "saleValue": Infinity}') is None
    assert parse_metadata('{"saleValue": NaN}') is None
    assert sale_value_of('{"kind": "sale", "saleValue": 1e999}') is None


def test_unknown_keys_survive_a_round_trip():
    meta = parse_metadata({'saleValue': 800, 'paymentTerms': '30 dias'})
    assert isinstance(meta, SaleTransition)
    assert json.loads(meta.to_json())['paymentTerms'] == '30 dias'
