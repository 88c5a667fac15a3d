from flask import Blueprint, current_app, jsonify

from funil.database import get_db
from funil.services import assistant
from funil.utils import gestor_required, parse_body
from funil.validation import ChatIn

bp = Blueprint('assistente', __name__)


@bp.route('/api/chat', methods=['POST'])
@gestor_required
def api_chat():
    data = parse_body(ChatIn)
    db = get_db()
    try:
        response = assistant.ask(db, data.message, data.history)
    except assistant.AssistantConfigError as e:
        return jsonify({'error': str(e)}), 500
    except Exception as e:
        current_app.logger.exception('Erro no chat IA')
        return jsonify({'error': f'Erro ao processar mensagem: {e}'}), 502
    return jsonify({'response': response})
