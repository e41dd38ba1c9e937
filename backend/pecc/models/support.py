from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from typing import Annotated, Literal, Optional, Union

TicketStatus = Literal["open", "closed"]
TicketType = Literal["support", "quote", "purchase"]
ContractStatus = Literal["pending", "signed", "cancelled"]
CancellationStatus = Literal["pending", "confirmed"]


class SupportTicket(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    subject: str
    status: TicketStatus = "open"
    user_id: str
    user_name: str
    type: TicketType = "support"
    # Only set on tickets opened to cancel a contract that lives in another ticket
    related_ticket_id: Optional[str] = None
    related_contract_id: Optional[str] = None
    last_message: Optional[str] = None
    last_message_at: Optional[str] = None
    created_at: str

    @property
    def is_cancellation_ticket(self) -> bool:
        return bool(self.related_ticket_id and self.related_contract_id)


class SupportTicketCreate(BaseModel):
    type: TicketType = "support"
    subject: Optional[str] = None
    service_name: Optional[str] = None  # quote / purchase requests


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


# ==================== MESSAGES ====================
class MessageAuthor(BaseModel):
    uid: str
    name: str
    rank: Optional[str] = None
    is_admin: bool = False


class ReplyRef(BaseModel):
    message_id: str
    text: str
    author_name: str


class ContractData(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)
    client_name: str = Field(..., min_length=3)
    client_cpf: str = Field(..., min_length=11)
    object: str = Field(..., min_length=10)
    deadline: str = Field(..., min_length=1)
    price: str = Field(..., min_length=1)


class CancellationData(BaseModel):
    original_ticket_id: str
    original_contract_id: str


class _MessageBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    ticket_id: str
    text: str
    author: MessageAuthor
    is_bot_message: bool = False
    created_at: str


class TextMessage(_MessageBase):
    kind: Literal["text"] = "text"
    reply_to: Optional[ReplyRef] = None


class ContractMessage(_MessageBase):
    kind: Literal["contract"] = "contract"
    contract_data: ContractData
    contract_status: ContractStatus = "pending"
    signed_at: Optional[str] = None


class CancellationMessage(_MessageBase):
    kind: Literal["cancellation"] = "cancellation"
    cancellation_data: CancellationData
    cancellation_status: CancellationStatus = "pending"
    confirmed_at: Optional[str] = None


TicketMessage = Annotated[
    Union[TextMessage, ContractMessage, CancellationMessage],
    Field(discriminator="kind")
]

_message_adapter = TypeAdapter(TicketMessage)


def parse_message(doc: dict) -> TicketMessage:
    return _message_adapter.validate_python(doc)


class SupportMessageCreate(BaseModel):
    text: str = Field(..., min_length=1)
    reply_to_id: Optional[str] = None


class SignContractRequest(BaseModel):
    full_name: str


class ConfirmCancellationRequest(BaseModel):
    token: str


# ==================== AUDIT ====================
class AuditLog(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    admin_id: str
    admin_email: str
    action: str  # user_update, codes_generate, contract_generate, etc.
    target_type: str  # user, redemption_code, ticket, message
    target_id: str
    old_value: Optional[dict] = None
    new_value: Optional[dict] = None
    reason: Optional[str] = None
    created_at: str


class ErrorLog(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    error_type: str
    error_message: str
    endpoint: str
    user_id: Optional[str] = None
    stack_trace: Optional[str] = None
    created_at: str
