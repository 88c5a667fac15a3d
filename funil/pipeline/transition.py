"""Drag-end handling for the pipeline board.

A drop into an ordinary stage goes straight to the executor. A drop into the
closing stage suspends until the sale dialog is confirmed or cancelled; the
board is not touched while the dialog is open, so cancelling leaves it
exactly as it was before the drag.
"""
import logging
import math
from collections import namedtuple
from enum import Enum

from funil.pipeline.api import PipelineAPIError

logger = logging.getLogger(__name__)

DragResult = namedtuple('DragResult', 'client_id source_stage_id source_index dest_stage_id dest_index')


class State(Enum):
    IDLE = 'idle'
    AWAITING_SALE_INPUT = 'awaiting_sale_input'
    PERSISTING = 'persisting'


class Outcome(Enum):
    NOOP = 'noop'
    BUSY = 'busy'
    MOVED = 'moved'
    FAILED = 'failed'
    AWAITING_SALE = 'awaiting_sale'
    INVALID = 'invalid'
    CANCELLED = 'cancelled'


class SaleForm:
    """State of the sale capture dialog."""

    def __init__(self, client_name, stage_name, products=()):
        self.client_name = client_name
        self.stage_name = stage_name
        self.products = list(products)
        self.product_id = None
        self.quantity = '1'
        self.sale_value = ''
        self.notes = ''
        self.errors = {}

    def search(self, term):
        term = (term or '').strip().lower()
        if not term:
            return list(self.products)
        return [p for p in self.products
                if term in (p.get('name') or '').lower() or term in (p.get('stockCode') or '').lower()]

    def product(self):
        for p in self.products:
            if p['id'] == self.product_id:
                return p
        return None

    def validate(self):
        errors = {}

        if self.product_id in (None, '') or self.product() is None:
            errors['productId'] = 'Selecione um produto'

        try:
            quantity = int(str(self.quantity).strip())
        except ValueError:
            quantity = 0
        if quantity < 1:
            errors['quantity'] = 'Quantidade deve ser pelo menos 1'

        try:
            value = float(str(self.sale_value).strip().replace(',', '.'))
        except ValueError:
            value = 0.0
        if not math.isfinite(value) or value <= 0:
            errors['saleValue'] = 'Informe o valor da venda'

        self.errors = errors
        return not errors

    def sale_data(self):
        product = self.product()
        return {
            'productId': self.product_id,
            'productName': product.get('name', '') if product else '',
            'quantity': int(str(self.quantity).strip()),
            'saleValue': float(str(self.sale_value).strip().replace(',', '.')),
            'notes': self.notes or '',
        }


class TransitionInterceptor:

    def __init__(self, board, executor, load_products=None):
        self.board = board
        self.executor = executor
        self.load_products = load_products
        self.state = State.IDLE
        self.pending = None
        self.dialog = None

    def on_drag_end(self, drag):
        if self.state is not State.IDLE:
            return Outcome.BUSY

        # Dropped outside any column, or back on its own slot
        if drag.dest_stage_id is None:
            return Outcome.NOOP
        if drag.dest_stage_id == drag.source_stage_id and drag.dest_index == drag.source_index:
            return Outcome.NOOP

        dest = self.board.column(drag.dest_stage_id)
        if dest is None or self.board.column(drag.source_stage_id) is None:
            return Outcome.NOOP

        # Reordering inside the closing column does not register another sale
        if dest.get('isClosedStage') and drag.dest_stage_id != drag.source_stage_id:
            self._open_dialog(drag, dest)
            return Outcome.AWAITING_SALE

        return self._persist(drag)

    def update_form(self, **fields):
        if self.state is not State.AWAITING_SALE_INPUT:
            raise RuntimeError('No sale dialog open')
        for name, value in fields.items():
            if not hasattr(self.dialog, name) or name in ('errors', 'products'):
                raise AttributeError(name)
            setattr(self.dialog, name, value)

    def confirm(self):
        if self.state is not State.AWAITING_SALE_INPUT:
            raise RuntimeError('No sale dialog open')
        if not self.dialog.validate():
            # Dialog stays open with the field errors
            return Outcome.INVALID
        return self._persist(self.pending, self.dialog.sale_data())

    def cancel(self):
        if self.state is not State.AWAITING_SALE_INPUT:
            return Outcome.NOOP
        self._reset()
        return Outcome.CANCELLED

    def _open_dialog(self, drag, dest):
        products = []
        if self.load_products is not None:
            try:
                products = self.load_products()
            except PipelineAPIError:
                logger.exception('Erro ao buscar produtos')
        col, index = self.board.locate(drag.client_id)
        client_name = col['clients'][index]['name'] if col else ''
        self.pending = drag
        self.dialog = SaleForm(client_name, dest['name'], products)
        self.state = State.AWAITING_SALE_INPUT

    def _persist(self, drag, sale_data=None):
        self.state = State.PERSISTING
        try:
            ok = self.executor.execute(drag, sale_data)
        finally:
            self._reset()
        return Outcome.MOVED if ok else Outcome.FAILED

    def _reset(self):
        self.state = State.IDLE
        self.pending = None
        self.dialog = None
