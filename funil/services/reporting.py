"""Sales reporting over the interaction log.

Sales are never stored on their own: a sale is an interaction whose type is
one of the sale types and whose metadata carries a sale value. Everything here
reads the log, nothing writes.
"""
from datetime import datetime, timedelta

from funil.database import sale_type_names
from funil.models import parse_metadata, SaleTransition

PERIOD_DAYS = {
    'week': 7,
    'month': 30,
    'quarter': 90,
    'year': 365,
}

DB_FORMAT = '%Y-%m-%d %H:%M:%S'


def period_start(period, now):
    return now - timedelta(days=PERIOD_DAYS.get(period, PERIOD_DAYS['month']))


def collect_sales(rows, sale_types):
    """Turn interaction rows into sale records, skipping anything unusable."""
    sales = []
    for row in rows:
        if row['type'] not in sale_types:
            continue
        meta = parse_metadata(row['metadata'])
        if not isinstance(meta, SaleTransition):
            continue
        sales.append({
            'value': meta.sale_value,
            'quantity': meta.quantity,
            'productName': meta.product_name,
            'userId': row['user_id'],
            'clientId': row['client_id'],
            'date': str(row['created_at'])[:10],
        })
    return sales


def seller_ranking(sales, sellers, client_counts):
    ranking = []
    for seller in sellers:
        own = [s for s in sales if s['userId'] == seller['id']]
        total_clients = client_counts.get(seller['id'], 0)
        closed_clients = len({s['clientId'] for s in own})
        conversion = (closed_clients / total_clients * 100) if total_clients else 0
        ranking.append({
            'id': seller['id'],
            'name': seller['name'],
            'totalClientes': total_clients,
            'clientesFechados': closed_clients,
            'quantidadeVendas': len(own),
            'totalVendas': round(sum(s['value'] for s in own), 2),
            'conversao': round(conversion),
        })
    ranking.sort(key=lambda r: r['totalVendas'], reverse=True)
    return ranking


def client_ranking(sales, client_names, limit=5):
    totals = {}
    for s in sales:
        entry = totals.setdefault(s['clientId'], {'count': 0, 'total': 0.0})
        entry['count'] += 1
        entry['total'] += s['value']
    ranking = [{
        'id': client_id,
        'name': client_names.get(client_id, 'Cliente removido'),
        'quantidadeVendas': t['count'],
        'totalVendas': round(t['total'], 2),
    } for client_id, t in totals.items()]
    ranking.sort(key=lambda r: r['totalVendas'], reverse=True)
    return ranking[:limit]


def funnel(stages, clients):
    counts = {}
    for c in clients:
        counts[c['current_stage_id']] = counts.get(c['current_stage_id'], 0) + 1
    return [{
        'stage': s['name'],
        'count': counts.get(s['id'], 0),
        'color': s['color'],
        'isClosedStage': bool(s['is_closed_stage']),
    } for s in stages]


def timeline(sales, start, end):
    per_day = {}
    for s in sales:
        day = per_day.setdefault(s['date'], {'vendas': 0, 'valor': 0.0})
        day['vendas'] += 1
        day['valor'] += s['value']

    points = []
    day = start.date()
    while day <= end.date():
        key = day.isoformat()
        entry = per_day.get(key, {'vendas': 0, 'valor': 0.0})
        points.append({'date': key, 'vendas': entry['vendas'], 'valor': round(entry['valor'], 2)})
        day += timedelta(days=1)
    return points


def build_report(db, period='month', now=None):
    now = now or datetime.utcnow()
    start = period_start(period, now)

    sale_types = sale_type_names(db)
    configured = db.execute("SELECT value FROM system_config WHERE key = 'saleInteractionType'").fetchone()
    if configured and configured['value']:
        sale_types.add(configured['value'])

    rows = db.execute('''SELECT type, metadata, user_id, client_id, created_at FROM interactions
                         WHERE created_at BETWEEN ? AND ?''',
                      (start.strftime(DB_FORMAT), now.strftime(DB_FORMAT))).fetchall()
    sales = collect_sales(rows, sale_types)

    sellers = db.execute("SELECT id, name FROM users WHERE role = 'VENDEDOR' AND is_active = 1 ORDER BY name").fetchall()
    client_counts = {r['assigned_user_id']: r['c'] for r in db.execute(
        'SELECT assigned_user_id, COUNT(*) AS c FROM clients GROUP BY assigned_user_id').fetchall()}
    clients = db.execute('SELECT id, name, current_stage_id FROM clients WHERE archived_from_pipeline = 0').fetchall()
    client_names = {r['id']: r['name'] for r in db.execute('SELECT id, name FROM clients').fetchall()}
    stages = db.execute('SELECT * FROM pipeline_stages ORDER BY stage_order, id').fetchall()

    total_value = sum(s['value'] for s in sales)
    return {
        'period': period if period in PERIOD_DAYS else 'month',
        'startDate': start.strftime('%Y-%m-%d'),
        'endDate': now.strftime('%Y-%m-%d'),
        'vendedoresRanking': seller_ranking(sales, sellers, client_counts),
        'topClientes': client_ranking(sales, client_names),
        'funnelData': funnel(stages, clients),
        'vendasPorDia': timeline(sales, start, now),
        'metricas': {
            'totalClientes': len(clients),
            'quantidadeVendas': len(sales),
            'valorTotalVendas': round(total_value, 2),
            'ticketMedio': round(total_value / len(sales), 2) if sales else 0,
        },
    }
