import sys
import os

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from werkzeug.security import generate_password_hash

from funil import create_app
from funil.database import get_db, init_db, record_interaction
from funil.models import NOTE

SELLERS = [
    ('João Silva', 'joao@funil.local', 50000),
    ('Maria Santos', 'maria@funil.local', 45000),
]

# name, cnpj, phone, email, potential value, seller index, stage name
CLIENTS = [
    ('Supermercado Bom Preço', '12345678000190', '11987654321', 'contato@bompreco.com', 15000, 0, 'Prospecção'),
    ('Distribuidora Centro', '98765432000110', '11912345678', 'vendas@districentro.com', 25000, 0, 'Negociação'),
    ('Atacado São Paulo', '11222333000144', '11998877665', 'contato@atacadosp.com', 40000, 0, 'Proposta Enviada'),
    ('Mercado Popular', '44555666000177', '11987651234', 'compras@mercadopopular.com', 18000, 1, 'Prospecção'),
    ('Mercearia da Vila', '22333444000155', '11965432109', 'merceariavila@email.com', 8000, 1, 'Negociação'),
]

PRODUCTS = [
    ('Arroz Tipo 1 5kg', 'ARZ-005'),
    ('Feijão Carioca 1kg', 'FEJ-001'),
    ('Óleo de Soja 900ml', 'OLE-900'),
]


def seed():
    app = create_app()
    init_db(app)
    with app.app_context():
        db = get_db()
        if db.execute("SELECT 1 FROM clients LIMIT 1").fetchone():
            print("Database already has clients, skipping demo seed.")
            return

        password = generate_password_hash('123456')
        seller_ids = []
        for name, email, goal in SELLERS:
            cur = db.execute("INSERT INTO users (name, email, password, role, monthly_goal) VALUES (?, ?, ?, 'VENDEDOR', ?)",
                             (name, email, password, goal))
            seller_ids.append(cur.lastrowid)
        print(f"[OK] {len(seller_ids)} sellers created (password 123456)")

        stages = {r['name']: r['id'] for r in db.execute("SELECT id, name FROM pipeline_stages").fetchall()}
        for name, cnpj, phone, email, value, seller, stage in CLIENTS:
            cur = db.execute('''INSERT INTO clients (name, cnpj, phone, email, potential_value, current_stage_id, assigned_user_id)
                                VALUES (?, ?, ?, ?, ?, ?, ?)''',
                             (name, cnpj, phone, email, value, stages[stage], seller_ids[seller]))
            record_interaction(db, cur.lastrowid, seller_ids[seller], NOTE, 'Cliente criado no sistema')
        print(f"[OK] {len(CLIENTS)} clients created")

        db.executemany("INSERT INTO products (name, stock_code) VALUES (?, ?)", PRODUCTS)
        print(f"[OK] {len(PRODUCTS)} products created")

        db.commit()


if __name__ == '__main__':
    seed()
