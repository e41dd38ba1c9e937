"""
Contract Engine

A contract is a message of kind ``contract`` inside a support ticket. Its
status moves only forward::

    pending --(client signs)--> signed
    pending --(client confirms a cancellation)--> cancelled

A cancellation is driven from a separate ticket that points back at the
original ticket and contract (``related_ticket_id`` / ``related_contract_id``).
The admin posts a ``cancellation`` message there; the client confirms it by
typing CANCELAR, which confirms the cancellation message, cancels the contract
and closes the cancellation ticket in one batch.

Who may do what:

    operation               admin   ticket owner (non-admin)
    generate contract        yes     no
    sign contract            no      yes
    request cancellation     yes     no
    confirm cancellation     no      yes

Every status write carries a ``pending`` precondition so a terminal state is
never overwritten, even by a concurrent request.
"""

from datetime import datetime, timezone
import logging
from typing import List, Optional

from pecc.core.config import CANCEL_COMMAND, CANCELLATION_TOKEN
from pecc.core.errors import (
    CancellationNotPending,
    CancellationTokenMismatch,
    ContractNotFound,
    ContractNotPending,
    Forbidden,
    MessageNotFound,
    NotACancellationTicket,
    SignatureMismatch,
    TicketClosed,
    TicketNotFound,
)
from pecc.db.store import DocumentNotFound, DocumentStore, PreconditionFailed, SERVER_TIMESTAMP
from pecc.models.support import ContractData, SupportTicketCreate
from pecc.services.tickets import MESSAGES, TICKETS, TicketService, append_message, author_of
from pecc.services.utils import names_match

logger = logging.getLogger(__name__)

# Profile tabs: contracts still awaiting action versus settled ones
CONTRACT_GROUPS = {
    "active": ["pending"],
    "finalized": ["signed", "cancelled"]
}


def is_cancel_command(text: Optional[str]) -> bool:
    words = (text or "").strip().lower().split(maxsplit=1)
    return bool(words) and words[0] == CANCEL_COMMAND


def contract_text(data: ContractData) -> str:
    return (
        "CONTRATO DE PRESTAÇÃO DE SERVIÇO\n\n"
        f"Contratante: {data.client_name}\n"
        f"CPF: {data.client_cpf}\n"
        f"Objeto: {data.object}\n"
        f"Prazo: {data.deadline}\n"
        f"Valor: {data.price}\n\n"
        "Para assinar, digite seu nome completo exatamente como acima."
    )


def signed_text(client_name: str, when: datetime) -> str:
    return f"Contrato assinado digitalmente por {client_name} em {when.strftime('%d/%m/%Y %H:%M')} (UTC)."


class ContractService:
    def __init__(self, store: DocumentStore, clock=None):
        self.store = store
        self.tickets = TicketService(store)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def _require_admin(actor: dict, action: str):
        if not actor.get("is_admin"):
            raise Forbidden(f"Only administrators can {action}")

    @staticmethod
    def _require_client(actor: dict, ticket: dict, action: str):
        if actor.get("is_admin"):
            raise Forbidden(f"Administrators can not {action}")
        if ticket.get("user_id") != actor["id"]:
            raise Forbidden(f"Only the ticket owner can {action}")

    async def _get_contract(self, ticket_id: str, message_id: str) -> dict:
        try:
            message = await self.tickets.get_message(ticket_id, message_id)
        except MessageNotFound:
            raise ContractNotFound()
        if message.get("kind") != "contract":
            raise ContractNotFound()
        return message

    # ==================== LISTING ====================
    async def list_user_contracts(self, user_id: str, status: Optional[str] = None) -> List[dict]:
        """Contracts across every ticket the user owns, newest first"""
        ticket_ids = [t["id"] for t in await self.store.query(TICKETS, {"user_id": user_id})]
        if not ticket_ids:
            return []
        filters = {"kind": "contract", "ticket_id": {"$in": ticket_ids}}
        if status:
            filters["contract_status"] = {"$in": CONTRACT_GROUPS.get(status, [status])}
        return await self.store.query(MESSAGES, filters, order_by=[("created_at", -1)])

    # ==================== GENERATE ====================
    async def generate_contract(self, actor: dict, ticket_id: str, data: ContractData) -> dict:
        self._require_admin(actor, "generate contracts")
        ticket = await self.tickets.get_ticket(ticket_id)
        if ticket.get("status") == "closed":
            raise TicketClosed()

        batch = self.store.batch()
        message_id = append_message(batch, ticket_id, {
            "kind": "contract",
            "text": contract_text(data),
            "author": author_of(actor),
            "contract_data": data.model_dump(),
            "contract_status": "pending",
            "signed_at": None
        })
        await batch.commit()
        logger.info("Contract %s generated on ticket %s by %s", message_id, ticket_id, actor["id"])
        return await self.store.get(MESSAGES, message_id)

    # ==================== SIGN ====================
    async def sign_contract(self, actor: dict, ticket_id: str, message_id: str, full_name: str) -> dict:
        ticket = await self.tickets.get_ticket(ticket_id)
        self._require_client(actor, ticket, "sign contracts")
        contract = await self._get_contract(ticket_id, message_id)
        if contract.get("contract_status") != "pending":
            raise ContractNotPending()

        client_name = contract["contract_data"]["client_name"]
        if not names_match(full_name, client_name):
            raise SignatureMismatch()

        batch = self.store.batch()
        batch.update(MESSAGES, message_id, {
            "contract_status": "signed",
            "text": signed_text(client_name, self._clock()),
            "signed_at": SERVER_TIMESTAMP
        }, expect={"contract_status": "pending"})
        try:
            await batch.commit()
        except PreconditionFailed:
            raise ContractNotPending()
        logger.info("Contract %s signed by user %s", message_id, actor["id"])
        return await self.store.get(MESSAGES, message_id)

    # ==================== CANCELLATION ====================
    async def open_cancellation_ticket(self, actor: dict, ticket_id: str, contract_id: str) -> dict:
        """Client asks to cancel a pending contract; opens the linked ticket"""
        ticket = await self.tickets.get_ticket(ticket_id)
        self._require_client(actor, ticket, "request a contract cancellation")
        contract = await self._get_contract(ticket_id, contract_id)
        if contract.get("contract_status") != "pending":
            raise ContractNotPending()

        return await self.tickets.create_ticket(
            actor,
            SupportTicketCreate(
                type="support",
                subject=f"Cancelamento de contrato - {actor.get('display_name', '')}"
            ),
            related_ticket_id=ticket_id,
            related_contract_id=contract_id
        )

    async def request_cancellation(self, actor: dict, ticket_id: str) -> dict:
        self._require_admin(actor, "request contract cancellations")
        ticket = await self.tickets.get_ticket(ticket_id)
        if ticket.get("status") == "closed":
            raise TicketClosed()

        original_ticket_id = ticket.get("related_ticket_id")
        original_contract_id = ticket.get("related_contract_id")
        if not original_ticket_id or not original_contract_id:
            raise NotACancellationTicket()

        contract = await self._get_contract(original_ticket_id, original_contract_id)
        if contract.get("contract_status") != "pending":
            raise ContractNotPending()

        pending = await self.store.find_one(MESSAGES, {
            "ticket_id": ticket_id,
            "kind": "cancellation",
            "cancellation_status": "pending"
        })
        if pending:
            raise CancellationNotPending("A cancellation is already awaiting confirmation on this ticket")

        batch = self.store.batch()
        message_id = append_message(batch, ticket_id, {
            "kind": "cancellation",
            "text": (
                "Solicitação de cancelamento do contrato "
                f"de {contract['contract_data']['client_name']}. "
                f"Para confirmar, digite {CANCELLATION_TOKEN}."
            ),
            "author": author_of(actor),
            "cancellation_data": {
                "original_ticket_id": original_ticket_id,
                "original_contract_id": original_contract_id
            },
            "cancellation_status": "pending",
            "confirmed_at": None
        })
        await batch.commit()
        logger.info("Cancellation %s requested on ticket %s for contract %s",
                    message_id, ticket_id, original_contract_id)
        return await self.store.get(MESSAGES, message_id)

    async def confirm_cancellation(self, actor: dict, ticket_id: str, message_id: str, token: str) -> dict:
        ticket = await self.tickets.get_ticket(ticket_id)
        self._require_client(actor, ticket, "confirm a cancellation")
        message = await self.tickets.get_message(ticket_id, message_id)
        if message.get("kind") != "cancellation":
            raise MessageNotFound()
        if message.get("cancellation_status") != "pending":
            raise CancellationNotPending()
        # Exact and case-sensitive on purpose, unlike signature matching
        if token != CANCELLATION_TOKEN:
            raise CancellationTokenMismatch()

        original_contract_id = message["cancellation_data"]["original_contract_id"]
        batch = self.store.batch()
        batch.update(MESSAGES, message_id, {
            "cancellation_status": "confirmed",
            "text": "Cancelamento confirmado pelo cliente.",
            "confirmed_at": SERVER_TIMESTAMP
        }, expect={"cancellation_status": "pending"})
        batch.update(MESSAGES, original_contract_id, {
            "contract_status": "cancelled",
            "cancelled_at": SERVER_TIMESTAMP
        }, expect={"contract_status": "pending"})
        batch.update(TICKETS, ticket_id, {"status": "closed"})

        try:
            await batch.commit()
        except PreconditionFailed as e:
            if e.doc_id == original_contract_id:
                raise ContractNotPending()
            raise CancellationNotPending()
        except DocumentNotFound as e:
            if e.collection == TICKETS:
                raise TicketNotFound()
            raise ContractNotFound()

        logger.info("Contract %s cancelled via ticket %s", original_contract_id, ticket_id)
        return await self.store.get(MESSAGES, message_id)
