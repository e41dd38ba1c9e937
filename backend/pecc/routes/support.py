from fastapi import APIRouter, Depends

from pecc.core.security import require_auth, require_admin
from pecc.db import DocumentStore, get_store
from pecc.models.support import (
    ConfirmCancellationRequest,
    ContractData,
    SignContractRequest,
    SupportMessageCreate,
    SupportTicketCreate,
    TicketStatusUpdate,
    parse_message,
)
from pecc.services.contracts import ContractService, is_cancel_command
from pecc.services.tickets import TicketService
from pecc.services.utils import create_audit_log

router = APIRouter(tags=["support"])


def get_tickets(store: DocumentStore = Depends(get_store)) -> TicketService:
    return TicketService(store)


def get_contracts(store: DocumentStore = Depends(get_store)) -> ContractService:
    return ContractService(store)


# ==================== USER ENDPOINTS ====================
@router.post("/support/tickets")
async def create_support_ticket(
    ticket_data: SupportTicketCreate,
    user: dict = Depends(require_auth),
    tickets: TicketService = Depends(get_tickets)
):
    ticket = await tickets.create_ticket(user, ticket_data)
    return {"message": "Ticket created", "ticket": ticket}

@router.get("/support/tickets")
async def get_user_tickets(user: dict = Depends(require_auth), tickets: TicketService = Depends(get_tickets)):
    return {"tickets": await tickets.list_tickets(user_id=user["id"], limit=50)}

@router.get("/support/contracts")
async def get_user_contracts(
    user: dict = Depends(require_auth),
    contracts: ContractService = Depends(get_contracts),
    status: str = None
):
    """Contracts from all of the user's tickets; status is a contract status, 'active' or 'finalized'"""
    result = await contracts.list_user_contracts(user["id"], status=status)
    return {"contracts": [parse_message(m) for m in result], "total": len(result)}

@router.get("/support/tickets/{ticket_id}")
async def get_ticket_detail(
    ticket_id: str,
    user: dict = Depends(require_auth),
    tickets: TicketService = Depends(get_tickets)
):
    ticket = await tickets.get_visible_ticket(user, ticket_id)
    messages = await tickets.list_messages(ticket_id)
    return {**ticket, "messages": [parse_message(m) for m in messages]}

@router.post("/support/tickets/{ticket_id}/messages")
async def add_ticket_message(
    ticket_id: str,
    message_data: SupportMessageCreate,
    user: dict = Depends(require_auth),
    tickets: TicketService = Depends(get_tickets),
    contracts: ContractService = Depends(get_contracts),
    store: DocumentStore = Depends(get_store)
):
    # Admin chat commands become typed operations, never plain text
    if user.get("is_admin") and is_cancel_command(message_data.text):
        message = await contracts.request_cancellation(user, ticket_id)
        await create_audit_log(store, user, "cancellation_request", "ticket", ticket_id,
                               new_value={"message_id": message["id"]})
        return {"message": "Cancellation requested", "data": parse_message(message)}

    message = await tickets.post_message(user, ticket_id, message_data.text, message_data.reply_to_id)
    return {"message": "Message added", "data": parse_message(message)}

@router.post("/support/tickets/{ticket_id}/contracts/{message_id}/sign")
async def sign_contract(
    ticket_id: str,
    message_id: str,
    request: SignContractRequest,
    user: dict = Depends(require_auth),
    contracts: ContractService = Depends(get_contracts)
):
    message = await contracts.sign_contract(user, ticket_id, message_id, request.full_name)
    return {"message": "Contract signed", "data": parse_message(message)}

@router.post("/support/tickets/{ticket_id}/contracts/{message_id}/cancellation")
async def open_contract_cancellation(
    ticket_id: str,
    message_id: str,
    user: dict = Depends(require_auth),
    contracts: ContractService = Depends(get_contracts)
):
    ticket = await contracts.open_cancellation_ticket(user, ticket_id, message_id)
    return {"message": "Cancellation ticket opened", "ticket": ticket}

@router.post("/support/tickets/{ticket_id}/cancellations/{message_id}/confirm")
async def confirm_contract_cancellation(
    ticket_id: str,
    message_id: str,
    request: ConfirmCancellationRequest,
    user: dict = Depends(require_auth),
    contracts: ContractService = Depends(get_contracts)
):
    message = await contracts.confirm_cancellation(user, ticket_id, message_id, request.token)
    return {"message": "Cancellation confirmed", "data": parse_message(message)}

# ==================== ADMIN ENDPOINTS ====================
@router.get("/admin/support/tickets")
async def get_admin_tickets(
    admin: dict = Depends(require_admin),
    tickets: TicketService = Depends(get_tickets),
    store: DocumentStore = Depends(get_store),
    status: str = None,
    type: str = None,
    limit: int = 100
):
    result = await tickets.list_tickets(status=status, ticket_type=type, limit=limit)
    query = {k: v for k, v in {"status": status, "type": type}.items() if v}
    return {"tickets": result, "total": await store.count("support_tickets", query)}

@router.post("/admin/support/tickets/{ticket_id}/contracts")
async def generate_contract(
    ticket_id: str,
    contract_data: ContractData,
    admin: dict = Depends(require_admin),
    contracts: ContractService = Depends(get_contracts),
    store: DocumentStore = Depends(get_store)
):
    message = await contracts.generate_contract(admin, ticket_id, contract_data)
    await create_audit_log(store, admin, "contract_generate", "ticket", ticket_id,
                           new_value={"message_id": message["id"], **contract_data.model_dump()})
    return {"message": "Contract generated", "data": parse_message(message)}

@router.post("/admin/support/tickets/{ticket_id}/cancellation-request")
async def request_contract_cancellation(
    ticket_id: str,
    admin: dict = Depends(require_admin),
    contracts: ContractService = Depends(get_contracts),
    store: DocumentStore = Depends(get_store)
):
    message = await contracts.request_cancellation(admin, ticket_id)
    await create_audit_log(store, admin, "cancellation_request", "ticket", ticket_id,
                           new_value={"message_id": message["id"]})
    return {"message": "Cancellation requested", "data": parse_message(message)}

@router.put("/admin/support/tickets/{ticket_id}/status")
async def update_ticket_status(
    ticket_id: str,
    update: TicketStatusUpdate,
    admin: dict = Depends(require_admin),
    tickets: TicketService = Depends(get_tickets),
    store: DocumentStore = Depends(get_store)
):
    change = await tickets.set_status(admin, ticket_id, update.status)
    await create_audit_log(store, admin, "ticket_status", "ticket", ticket_id,
                           old_value={"status": change["old_status"]}, new_value={"status": update.status})
    return {"message": "Ticket status updated", "status": update.status}

@router.delete("/admin/support/tickets/{ticket_id}")
async def delete_ticket(
    ticket_id: str,
    admin: dict = Depends(require_admin),
    tickets: TicketService = Depends(get_tickets),
    store: DocumentStore = Depends(get_store)
):
    removed = await tickets.delete_ticket(admin, ticket_id)
    await create_audit_log(store, admin, "ticket_delete", "ticket", ticket_id,
                           new_value={"messages_removed": removed})
    return {"message": "Ticket deleted", "messages_removed": removed}
