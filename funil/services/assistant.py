import json
import os
from datetime import datetime, timedelta

from agno.agent import Agent
from agno.models.groq import Groq
from agno.models.ollama import Ollama
from agno.models.openai import OpenAIChat

from funil.database import get_config_value, sale_type_names
from funil.models import SaleTransition, parse_metadata
from funil.utils import date_only, format_currency

SYSTEM_PROMPT = """Você é o Assistente IA de {empresa}, um analista de negócios experiente e estratégico.

Seu papel:
- Responder perguntas sobre o desempenho comercial da empresa com base nos dados reais fornecidos
- Você tem acesso às fichas completas de cada cliente (dados cadastrais, interações, produtos, campos customizados)
- Você tem acesso ao histórico de cada vendedor (clientes, interações recentes, tarefas)
- Fornecer insights acionáveis, identificar riscos, oportunidades e tendências
- Ser direto e objetivo, em português brasileiro, usando markdown quando ajudar (listas, tabelas)
- Nunca inventar dados. Se não tiver a informação, diga claramente
- Valores monetários no formato brasileiro (R$ X.XXX,XX)

Você só tem acesso aos dados fornecidos no contexto."""

DEFAULT_MODELS = {
    'groq': 'llama-3.3-70b-versatile',
    'openai': 'gpt-4o-mini',
    'ollama': 'llama3.1',
}


class AssistantConfigError(Exception):
    pass


def get_assistant_config(db):
    # Environment (.env) wins over the values saved through the settings screen
    provider = os.getenv('AI_PROVIDER') or get_config_value(db, 'aiProvider', 'groq')
    return {
        'provider': provider,
        'model': os.getenv('AI_MODEL') or get_config_value(db, 'aiModel', DEFAULT_MODELS.get(provider)),
        'api_key': os.getenv('AI_API_KEY') or get_config_value(db, 'aiApiKey', ''),
        'empresa': get_config_value(db, 'companyName', 'nossa empresa'),
    }


def build_model(conf):
    provider = conf['provider']
    if provider != 'ollama' and not conf['api_key']:
        raise AssistantConfigError('Chave da API de IA não configurada. Configure em Configurações → Integrações.')
    if provider == 'groq':
        return Groq(id=conf['model'], api_key=conf['api_key'])
    if provider == 'openai':
        return OpenAIChat(id=conf['model'], api_key=conf['api_key'])
    if provider == 'ollama':
        return Ollama(id=conf['model'])
    raise AssistantConfigError(f'Provedor de IA desconhecido: {provider}')


def _dump(data):
    return json.dumps(data, ensure_ascii=False, indent=2, default=str)


def build_business_context(db, now=None):
    """Snapshot of the business as plain text for the model's context window."""
    now = now or datetime.utcnow()
    today = now.strftime('%Y-%m-%d')
    thirty_days_ago = (now - timedelta(days=30)).strftime('%Y-%m-%d %H:%M:%S')

    stages = db.execute('''
        SELECT s.*, COUNT(c.id) AS total FROM pipeline_stages s
        LEFT JOIN clients c ON c.current_stage_id = s.id
        GROUP BY s.id ORDER BY s.stage_order, s.id
    ''').fetchall()
    closed_stage_ids = {s['id'] for s in stages if s['is_closed_stage']}

    users = db.execute('SELECT * FROM users WHERE is_active = 1 ORDER BY name').fetchall()
    user_names = {u['id']: u['name'] for u in users}

    clients = db.execute('''
        SELECT c.*, s.name AS stage_name FROM clients c
        JOIN pipeline_stages s ON s.id = c.current_stage_id ORDER BY c.name
    ''').fetchall()

    interactions = {}
    for row in db.execute('SELECT * FROM interactions ORDER BY created_at DESC, id DESC').fetchall():
        interactions.setdefault(row['client_id'], []).append(row)

    products_by_client = {}
    for row in db.execute('''SELECT cp.client_id, p.name FROM client_products cp
                             JOIN products p ON p.id = cp.product_id''').fetchall():
        products_by_client.setdefault(row['client_id'], []).append(row['name'])

    fields_by_client = {}
    for row in db.execute('''SELECT v.client_id, f.name, v.value FROM custom_field_values v
                             JOIN custom_fields f ON f.id = v.custom_field_id
                             WHERE v.client_id IS NOT NULL''').fetchall():
        fields_by_client.setdefault(row['client_id'], []).append({'campo': row['name'], 'valor': row['value']})

    tasks = db.execute('''SELECT t.*, c.name AS client_name FROM tasks t
                          LEFT JOIN clients c ON c.id = t.client_id ORDER BY t.due_date DESC''').fetchall()

    sale_types = sale_type_names(db)
    sales = []
    for rows in interactions.values():
        for row in rows:
            meta = parse_metadata(row['metadata'])
            if row['type'] in sale_types and isinstance(meta, SaleTransition):
                sales.append((row, meta))

    # Sellers
    sellers_context = []
    for seller in (u for u in users if u['role'] == 'VENDEDOR'):
        own_clients = [c for c in clients if c['assigned_user_id'] == seller['id']]
        own_tasks = [t for t in tasks if t['user_id'] == seller['id']]
        own_sales = [m for r, m in sales if r['user_id'] == seller['id']]
        timeline = sorted((i for c in own_clients for i in interactions.get(c['id'], [])),
                          key=lambda i: i['created_at'], reverse=True)[:10]
        sellers_context.append({
            'nome': seller['name'],
            'email': seller['email'],
            'metaMensal': seller['monthly_goal'],
            'totalClientes': len(own_clients),
            'clientesFechados': len([c for c in own_clients if c['current_stage_id'] in closed_stage_ids]),
            'receitaVendas': sum(m.sale_value for m in own_sales),
            'tarefasPendentes': len([t for t in own_tasks if t['status'] == 'PENDENTE']),
            'tarefasAtrasadas': len([t for t in own_tasks
                                     if t['status'] != 'CONCLUIDA' and date_only(t['due_date']) < today]),
            'tarefasConcluidas': len([t for t in own_tasks if t['status'] == 'CONCLUIDA']),
            'clientes': [{'nome': c['name'], 'estagio': c['stage_name'], 'valorPotencial': c['potential_value']}
                         for c in own_clients],
            'ultimasInteracoes': [{
                'data': date_only(i['created_at']),
                'tipo': i['type'],
                'descricao': (i['description'] or '')[:100],
            } for i in timeline],
        })

    pipeline_context = [{
        'fase': s['name'],
        'totalClientes': s['total'],
        'isFaseFechamento': bool(s['is_closed_stage']),
    } for s in stages]

    clients_context = []
    inactive = []
    for c in clients:
        history = interactions.get(c['id'], [])
        last = date_only(history[0]['created_at']) if history else 'Nunca'
        clients_context.append({
            'nome': c['name'],
            'cnpj': c['cnpj'] or 'Não informado',
            'telefone': c['phone'] or 'Não informado',
            'email': c['email'] or 'Não informado',
            'vendedor': user_names.get(c['assigned_user_id'], 'Sem vendedor'),
            'faseAtual': c['stage_name'],
            'valorPotencial': c['potential_value'],
            'arquivado': bool(c['archived_from_pipeline']),
            'criadoEm': date_only(c['created_at']),
            'produtos': products_by_client.get(c['id'], []),
            'camposCustomizados': fields_by_client.get(c['id'], []),
            'interacoes': [{
                'data': date_only(i['created_at']),
                'tipo': i['type'],
                'responsavel': user_names.get(i['user_id'], 'Sistema'),
                'descricao': (i['description'] or '')[:150],
            } for i in history[:5]],
            'ultimaInteracao': last,
        })
        if not history or history[0]['created_at'] < thirty_days_ago:
            inactive.append({'nome': c['name'], 'vendedor': user_names.get(c['assigned_user_id'], 'Sem vendedor'),
                             'faseAtual': c['stage_name'], 'ultimaInteracao': last})

    overdue_context = [{
        'tarefa': t['title'],
        'vendedor': user_names.get(t['user_id'], 'N/A'),
        'cliente': t['client_name'] or 'Sem cliente',
        'vencimento': date_only(t['due_date']),
    } for t in tasks if t['status'] != 'CONCLUIDA' and date_only(t['due_date']) < today]

    products_context = [dict(r) for r in db.execute('''
        SELECT p.name AS nome, p.stock_code AS codigo, COUNT(cp.id) AS clientesVinculados
        FROM products p LEFT JOIN client_products cp ON cp.product_id = p.id
        GROUP BY p.id ORDER BY p.name
    ''').fetchall()]

    gestores = [{'nome': u['name'], 'metaMensal': u['monthly_goal']} for u in users if u['role'] == 'GESTOR']

    recent = db.execute('SELECT COUNT(*) AS c FROM interactions WHERE created_at >= ?', (thirty_days_ago,)).fetchone()['c']
    closed_count = len([c for c in clients if c['current_stage_id'] in closed_stage_ids])
    revenue = sum(m.sale_value for _, m in sales)
    conversion = (closed_count / len(clients) * 100) if clients else 0

    return f"""
=== DADOS COMPLETOS DA EMPRESA ===
Data atual: {today}

--- KPIs GERAIS ---
Total de Clientes: {len(clients)}
Clientes com Venda Fechada: {closed_count}
Receita Total (vendas registradas): {format_currency(revenue)}
Quantidade de Vendas: {len(sales)}
Taxa de Conversão: {conversion:.1f}%
Ticket Médio: {format_currency(revenue / len(sales) if sales else 0)}
Interações nos últimos 30 dias: {recent}
Tarefas atrasadas: {len(overdue_context)}

--- VENDEDORES ---
{_dump(sellers_context)}

--- FUNIL DE VENDAS (Pipeline) ---
{_dump(pipeline_context)}

--- FICHAS DOS CLIENTES ---
{_dump(clients_context)}

--- CLIENTES SEM INTERAÇÃO (30+ dias) ---
{_dump(inactive)}

--- TAREFAS ATRASADAS ---
{_dump(overdue_context)}

--- PRODUTOS ---
{_dump(products_context)}

--- GESTORES ---
{_dump(gestores)}
"""


def render_prompt(message, history):
    lines = []
    for item in history:
        speaker = 'Usuário' if item.role == 'user' else 'Assistente'
        lines.append(f'{speaker}: {item.content}')
    if lines:
        return 'Conversa até agora:\n' + '\n'.join(lines) + f'\n\nUsuário: {message}'
    return message


def ask(db, message, history=()):
    conf = get_assistant_config(db)
    model = build_model(conf)

    agent = Agent(
        model=model,
        description=SYSTEM_PROMPT.format(empresa=conf['empresa']),
        instructions=['Aqui estão os dados atualizados da empresa:\n' + build_business_context(db)],
        markdown=True,
    )
    response = agent.run(render_prompt(message, history))
    return response.content
