from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

HEX_COLOR = r'^#[0-9A-Fa-f]{6}$'
TASK_STATUSES = ('PENDENTE', 'CONCLUIDA', 'ATRASADA')
FIELD_TYPES = ('text', 'number', 'date', 'select', 'calculated')
ENTITY_TYPES = ('CLIENT', 'PRODUCT')


class Schema(BaseModel):
    # Numbers must be finite
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, allow_inf_nan=False)


def not_null(v):
    if v is None:
        raise ValueError('Campo obrigatório')
    return v


def first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    # Custom messages come through as "Value error, <msg>"
    msg = err.get('msg', 'Dados inválidos')
    if msg.startswith('Value error, '):
        msg = msg[len('Value error, '):]
    loc = '.'.join(str(p) for p in err.get('loc', ()))
    return f'{loc}: {msg}' if loc else msg


class LoginIn(Schema):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class StageIn(Schema):
    name: str = Field(min_length=1)
    color: str = Field(pattern=HEX_COLOR)
    order: Optional[int] = Field(default=None, ge=0)


class StageUpdate(Schema):
    name: Optional[str] = Field(default=None, min_length=1)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    order: Optional[int] = Field(default=None, ge=0)


class StageOrder(Schema):
    id: int
    order: int = Field(ge=0)


class ReorderIn(Schema):
    stages: List[StageOrder]


class SetClosedIn(Schema):
    is_closed_stage: bool = Field(alias='isClosedStage')


class SaleData(Schema):
    product_id: Union[int, str] = Field(alias='productId')
    product_name: str = Field(default='', alias='productName')
    quantity: int = Field(ge=1)
    sale_value: float = Field(gt=0, alias='saleValue')
    notes: str = ''


class MoveIn(Schema):
    client_id: int = Field(alias='clientId')
    new_stage_id: int = Field(alias='newStageId')
    sale_data: Optional[SaleData] = Field(default=None, alias='saleData')


class ClientIn(Schema):
    name: str = Field(min_length=1)
    cnpj: str = Field(min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    potential_value: float = Field(default=0, ge=0, alias='potentialValue')
    current_stage_id: Optional[int] = Field(default=None, alias='currentStageId')
    assigned_user_id: Optional[int] = Field(default=None, alias='assignedUserId')
    custom_fields: Dict[int, str] = Field(default_factory=dict, alias='customFields')
    product_ids: List[int] = Field(default_factory=list, alias='productIds')

    @field_validator('email')
    @classmethod
    def _email(cls, v):
        if v and '@' not in v:
            raise ValueError('Email inválido')
        return v or None

    @field_validator('custom_fields', mode='before')
    @classmethod
    def _stringify(cls, v):
        if isinstance(v, dict):
            return {k: '' if val is None else str(val) for k, val in v.items()}
        return v


class ClientUpdate(Schema):
    name: Optional[str] = Field(default=None, min_length=1)
    cnpj: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    potential_value: Optional[float] = Field(default=None, ge=0, alias='potentialValue')
    assigned_user_id: Optional[int] = Field(default=None, alias='assignedUserId')

    # Omitting a field leaves it alone; an explicit null is rejected
    @field_validator('name', 'potential_value')
    @classmethod
    def _not_null(cls, v):
        return not_null(v)


class InteractionIn(Schema):
    type: str = Field(min_length=1)
    description: str = Field(min_length=1)
    metadata: Optional[Union[dict, str]] = None


class ProductIn(Schema):
    name: str = Field(min_length=3)
    stock_code: str = Field(min_length=1, alias='stockCode')
    custom_fields: Dict[int, str] = Field(default_factory=dict, alias='customFields')


class ProductUpdate(Schema):
    name: Optional[str] = Field(default=None, min_length=3)
    stock_code: Optional[str] = Field(default=None, min_length=1, alias='stockCode')


class ProductVisibilityIn(Schema):
    # Custom field ids, or built-in keys prefixed with "__"
    hidden_fields: List[str] = Field(alias='hiddenFields')

    @field_validator('hidden_fields', mode='before')
    @classmethod
    def _stringify(cls, v):
        if isinstance(v, list):
            return [str(k) for k in v]
        return v


class TaskIn(Schema):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    due_date: str = Field(min_length=10, alias='dueDate')
    due_time: Optional[str] = Field(default=None, alias='dueTime')
    status: str = 'PENDENTE'
    client_id: Optional[Union[int, str]] = Field(default=None, alias='clientId')
    assigned_user_id: Optional[int] = Field(default=None, alias='assignedUserId')

    @field_validator('status')
    @classmethod
    def _status(cls, v):
        if v not in TASK_STATUSES:
            raise ValueError('Status inválido')
        return v


class TaskUpdate(Schema):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    due_date: Optional[str] = Field(default=None, alias='dueDate')
    due_time: Optional[str] = Field(default=None, alias='dueTime')
    status: Optional[str] = None

    @field_validator('title', 'due_date')
    @classmethod
    def _not_null(cls, v):
        return not_null(v)

    @field_validator('status')
    @classmethod
    def _status(cls, v):
        if v not in TASK_STATUSES:
            raise ValueError('Status inválido')
        return v


class InteractionTypeIn(Schema):
    name: str = Field(min_length=1)
    emoji: str = '📝'
    color: str = 'gray'
    is_sale_type: bool = Field(default=False, alias='isSaleType')


class InteractionTypeUpdate(Schema):
    name: Optional[str] = Field(default=None, min_length=1)
    emoji: Optional[str] = None
    color: Optional[str] = None
    is_sale_type: Optional[bool] = Field(default=None, alias='isSaleType')

    @field_validator('name', 'is_sale_type')
    @classmethod
    def _not_null(cls, v):
        return not_null(v)


class CustomFieldIn(Schema):
    name: str = Field(min_length=1)
    field_type: str = Field(alias='fieldType')
    entity_type: str = Field(alias='entityType')
    options: Optional[str] = None
    formula: Optional[str] = None
    required: bool = False
    order: int = 0
    highlight_color: Optional[str] = Field(default=None, alias='highlightColor')

    @field_validator('field_type')
    @classmethod
    def _field_type(cls, v):
        if v not in FIELD_TYPES:
            raise ValueError('Tipo de campo inválido')
        return v

    @field_validator('entity_type')
    @classmethod
    def _entity_type(cls, v):
        if v not in ENTITY_TYPES:
            raise ValueError('Entidade inválida')
        return v


class GoalIn(Schema):
    monthly_goal: float = Field(ge=0, alias='monthlyGoal')


class ConfigIn(Schema):
    key: str = Field(min_length=1)
    value: Optional[str] = ''


class UserIn(Schema):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    role: str = 'VENDEDOR'
    monthly_goal: float = Field(default=0, ge=0, alias='monthlyGoal')

    @field_validator('role')
    @classmethod
    def _role(cls, v):
        if v not in ('GESTOR', 'VENDEDOR'):
            raise ValueError('Perfil inválido')
        return v


class UserUpdate(Schema):
    name: Optional[str] = Field(default=None, min_length=1)
    password: Optional[str] = Field(default=None, min_length=6)
    role: Optional[str] = None
    is_active: Optional[bool] = Field(default=None, alias='isActive')
    monthly_goal: Optional[float] = Field(default=None, ge=0, alias='monthlyGoal')


class ChatMessage(Schema):
    role: str
    content: str


class ChatIn(Schema):
    message: str = Field(min_length=1)
    history: List[ChatMessage] = Field(default_factory=list)
