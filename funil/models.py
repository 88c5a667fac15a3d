"""Typed payloads for the interaction log.

Interaction rows carry a JSON ``metadata`` column. Two shapes exist: a plain
stage transition and a sale-backed transition. Both serialize with a ``kind``
discriminator and camelCase keys, and every reader goes through
:func:`parse_metadata` instead of calling ``json.loads`` itself.
"""
import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

STATUS_CHANGE = 'STATUS_CHANGE'
NOTE = 'NOTE'


class _Metadata(BaseModel):
    # Unknown keys are carried through untouched
    model_config = ConfigDict(populate_by_name=True, extra='allow', allow_inf_nan=False)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True, exclude_none=True), ensure_ascii=False)


class PlainTransition(_Metadata):
    kind: Literal['transition'] = 'transition'
    new_stage: str = Field(alias='newStage')
    new_stage_id: int = Field(alias='newStageId')


class SaleTransition(_Metadata):
    kind: Literal['sale'] = 'sale'
    new_stage: Optional[str] = Field(default=None, alias='newStage')
    new_stage_id: Optional[int] = Field(default=None, alias='newStageId')
    sale_value: float = Field(alias='saleValue')
    product_id: Optional[Union[int, str]] = Field(default=None, alias='productId')
    product_name: str = Field(default='', alias='productName')
    quantity: int = 1
    notes: str = ''


InteractionMetadata = Annotated[Union[PlainTransition, SaleTransition], Field(discriminator='kind')]

_adapter = TypeAdapter(InteractionMetadata)


def parse_metadata(raw) -> Optional[Union[PlainTransition, SaleTransition]]:
    """Return the typed payload of an interaction row, or None.

    Rows written before the ``kind`` tag existed are classified by their keys.
    Anything that is not valid JSON or does not fit a known shape yields None.
    """
    if not raw:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, dict):
        return None

    data = dict(raw)
    if 'kind' not in data:
        if data.get('saleValue') is not None:
            data['kind'] = 'sale'
        elif data.get('newStageId') is not None:
            data['kind'] = 'transition'
        else:
            return None
    try:
        return _adapter.validate_python(data)
    except ValidationError:
        return None


def sale_value_of(raw) -> Optional[float]:
    meta = parse_metadata(raw)
    if isinstance(meta, SaleTransition):
        return meta.sale_value
    return None


def metadata_dict(raw):
    """Metadata as a JSON-ready dict for API responses (None when absent)."""
    meta = parse_metadata(raw)
    if meta is None:
        return None
    return meta.model_dump(by_alias=True, exclude_none=True)
