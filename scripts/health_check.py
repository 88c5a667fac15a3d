import sys
import os
import sqlite3

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from funil import create_app
from funil.database import get_db

REQUIRED_TABLES = ['users', 'pipeline_stages', 'clients', 'interactions', 'interaction_types',
                   'products', 'client_products', 'tasks', 'custom_fields', 'custom_field_values',
                   'product_field_visibility', 'system_config']


def check_schema(app):
    print("[-] Verifying Database Schema...")
    ok = True
    with app.app_context():
        db = get_db()
        for table in REQUIRED_TABLES:
            try:
                db.execute(f"SELECT 1 FROM {table} LIMIT 1")
                print(f"  [OK] Table '{table}' exists.")
            except sqlite3.OperationalError:
                print(f"  [FAIL] Table '{table}' MISSING.")
                ok = False

        closing = db.execute("SELECT COUNT(*) AS c FROM pipeline_stages WHERE is_closed_stage = 1").fetchone()['c']
        if closing > 1:
            print(f"  [FAIL] {closing} closing stages configured (expected at most 1).")
            ok = False
        else:
            print(f"  [OK] {closing} closing stage configured.")

        orphans = db.execute('''SELECT COUNT(*) AS c FROM clients c
                                LEFT JOIN pipeline_stages s ON s.id = c.current_stage_id
                                WHERE s.id IS NULL''').fetchone()['c']
        if orphans:
            print(f"  [FAIL] {orphans} client(s) pointing at a missing stage.")
            ok = False
        else:
            print("  [OK] Every client sits in an existing stage.")
    return ok


def check_routes(app):
    print("\n[-] Verifying Route Registration...")
    ok = True
    required_bps = ['auth', 'pipeline', 'stages', 'clientes', 'produtos', 'tarefas', 'settings',
                    'dashboard', 'relatorios', 'assistente']
    for bp in required_bps:
        if bp in app.blueprints:
            print(f"  [OK] Blueprint '{bp}' registered.")
        else:
            print(f"  [FAIL] Blueprint '{bp}' NOT registered.")
            ok = False
    return ok


if __name__ == "__main__":
    print("=== SYSTEM HEALTH CHECK ===")
    try:
        app = create_app()
        healthy = check_schema(app) & check_routes(app)
        print("\n=== CHECK COMPLETED ===")
        sys.exit(0 if healthy else 1)
    except Exception as e:
        print(f"\n[CRITICAL ERROR] {e}")
        sys.exit(1)
