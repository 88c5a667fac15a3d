from funil.pipeline.api import PipelineAPI, PipelineAPIError
from funil.pipeline.board import BoardInvariantError, BoardState
from funil.pipeline.executor import MoveExecutor
from funil.pipeline.transition import DragResult, Outcome, SaleForm, State, TransitionInterceptor


def build_board(api, notify=None):
    """Wire board, executor and interceptor around one API client."""
    board = BoardState(api.fetch_board)
    executor = MoveExecutor(board, api, notify)
    interceptor = TransitionInterceptor(board, executor, load_products=api.list_products)
    board.load()
    return board, interceptor
