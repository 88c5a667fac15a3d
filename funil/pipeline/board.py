"""Client-held projection of the pipeline board.

The board is a list of stage columns, each with an ordered list of client
cards. It is rebuilt wholesale from the server and mutated locally only
through :meth:`BoardState.apply_move`, which removes the card from one column
before inserting it in another, so a client id never shows up twice.
"""
import copy


class BoardInvariantError(Exception):
    pass


class BoardState:

    def __init__(self, fetch):
        # fetch() returns the columns as served by GET /api/pipeline
        self._fetch = fetch
        self.columns = []

    def load(self):
        self.reset(self._fetch())
        return self.columns

    def reset(self, columns):
        columns = copy.deepcopy(list(columns))
        self._check(columns)
        self.columns = columns

    def rollback(self):
        """Drop any optimistic change and take the server's state again."""
        return self.load()

    def snapshot(self):
        return copy.deepcopy(self.columns)

    def column(self, stage_id):
        for col in self.columns:
            if col['id'] == stage_id:
                return col
        return None

    def locate(self, client_id):
        for col in self.columns:
            for index, card in enumerate(col['clients']):
                if card['id'] == client_id:
                    return col, index
        return None, None

    def apply_move(self, client_id, source_stage_id, dest_stage_id, dest_index):
        source = self.column(source_stage_id)
        dest = self.column(dest_stage_id)
        if source is None or dest is None:
            raise KeyError(f'Unknown stage {source_stage_id if source is None else dest_stage_id}')

        for index, card in enumerate(source['clients']):
            if card['id'] == client_id:
                break
        else:
            raise KeyError(f'Client {client_id} is not in stage {source_stage_id}')

        moved = source['clients'].pop(index)
        moved['currentStageId'] = dest_stage_id
        dest_index = max(0, min(dest_index, len(dest['clients'])))
        dest['clients'].insert(dest_index, moved)
        return moved

    apply_optimistic_move = apply_move

    def check(self):
        self._check(self.columns)

    @staticmethod
    def _check(columns):
        seen = {}
        for col in columns:
            for card in col.get('clients', []):
                if card['id'] in seen:
                    raise BoardInvariantError(
                        f"Client {card['id']} in stages {seen[card['id']]} and {col['id']}")
                seen[card['id']] = col['id']
