import os
from flask import Flask, jsonify, request
from flask_jwt_extended import JWTManager
from dotenv import load_dotenv
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from .database import get_db, close_connection
from .validation import first_error

load_dotenv()


def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_mapping(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'dev-secret-key'),
        JWT_SECRET_KEY=os.environ.get('JWT_SECRET_KEY', 'dev-jwt-secret'),
        # Browser uses the cookie, the pipeline client sends a Bearer header
        JWT_TOKEN_LOCATION=['cookies', 'headers'],
        JWT_COOKIE_CSRF_PROTECT=False,
        DATABASE=os.environ.get('DATABASE_PATH', os.path.join(app.instance_path, 'funil.db')),
        SALE_INTERACTION_TYPE=os.environ.get('SALE_INTERACTION_TYPE', 'Venda'),
    )

    if test_config:
        app.config.update(test_config)

    os.makedirs(app.instance_path, exist_ok=True)

    jwt = JWTManager(app)

    app.teardown_appcontext(close_connection)

    # JWT Callbacks
    @jwt.unauthorized_loader
    def custom_unauthorized_response(_err):
        return jsonify({'error': 'Não autenticado'}), 401

    @jwt.expired_token_loader
    def custom_expired_token_response(_hdr, _payload):
        return jsonify({'error': 'Sessão expirada', 'code': 'token_expired'}), 401

    @jwt.invalid_token_loader
    def custom_invalid_token_response(_err):
        return jsonify({'error': 'Token inválido'}), 401

    @jwt.user_lookup_loader
    def user_lookup_callback(_jwt_header, jwt_data):
        identity = jwt_data['sub']
        db = get_db()
        return db.execute('SELECT * FROM users WHERE id = ? AND is_active = 1', (identity,)).fetchone()

    @jwt.user_lookup_error_loader
    def custom_user_lookup_error(_hdr, _payload):
        return jsonify({'error': 'Usuário não encontrado'}), 401

    # Error handlers
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({'error': first_error(e)}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        if request.path.startswith('/api/'):
            return jsonify({'error': e.description}), e.code
        return e

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        app.logger.exception('Unhandled error on %s %s', request.method, request.path)
        return jsonify({'error': 'Erro interno do servidor'}), 500

    # Register Blueprints (Import here to avoid circular dependencies)
    from .routes import auth, pipeline, stages, clientes, produtos, tarefas, settings, dashboard, relatorios, assistente

    app.register_blueprint(auth.bp)
    app.register_blueprint(pipeline.bp)
    app.register_blueprint(stages.bp)
    app.register_blueprint(clientes.bp)
    app.register_blueprint(produtos.bp)
    app.register_blueprint(tarefas.bp)
    app.register_blueprint(settings.bp)
    app.register_blueprint(dashboard.bp)
    app.register_blueprint(relatorios.bp)
    app.register_blueprint(assistente.bp)

    return app
