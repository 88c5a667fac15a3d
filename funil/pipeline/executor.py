import logging

from funil.pipeline.api import PipelineAPIError
from funil.utils import format_currency

logger = logging.getLogger(__name__)


def log_notification(level, title, description):
    logger.log(logging.ERROR if level == 'error' else logging.INFO, '%s %s', title, description)


class MoveExecutor:
    """Applies a fully decided move: optimistic board change, then persist.

    A failed persist throws the optimistic board away by reloading it from
    the server. There is no retry; the user drags again.
    """

    def __init__(self, board, api, notify=None):
        self.board = board
        self.api = api
        self.notify = notify or log_notification

    def execute(self, drag, sale_data=None):
        before = self.board.snapshot()
        moved = self.board.apply_move(drag.client_id, drag.source_stage_id, drag.dest_stage_id, drag.dest_index)
        dest = self.board.column(drag.dest_stage_id)

        try:
            self.api.move(drag.client_id, drag.dest_stage_id, sale_data)
        except PipelineAPIError as e:
            logger.warning('Move of client %s to stage %s failed: %s', drag.client_id, drag.dest_stage_id, e)
            try:
                self.board.rollback()
            except PipelineAPIError:
                logger.exception('Board reload after failed move also failed')
                # Server unreachable: at least drop the optimistic guess
                self.board.reset(before)
            self.notify('error', 'Erro ao mover cliente', 'A mudança foi revertida.')
            return False

        if sale_data is not None:
            self.notify('success', '💰 Venda registrada!',
                        f"{format_currency(sale_data['saleValue'])} em {dest['name']}")
        else:
            self.notify('success', '✅ Cliente movido!', f"{moved['name']} agora está em {dest['name']}")
        return True
