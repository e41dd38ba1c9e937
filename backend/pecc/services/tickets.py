"""Support tickets and their message stream"""

import logging
from typing import List, Optional

from pecc.core.config import SUPPORT_BOT
from pecc.core.errors import Forbidden, MessageNotFound, TicketClosed, TicketNotFound
from pecc.db.store import DocumentNotFound, DocumentStore, SERVER_TIMESTAMP, WriteBatch, new_id
from pecc.models.support import SupportTicketCreate

logger = logging.getLogger(__name__)

TICKETS = "support_tickets"
MESSAGES = "ticket_messages"


def author_of(user: dict) -> dict:
    return {
        "uid": user["id"],
        "name": user.get("display_name", ""),
        "rank": user.get("rank"),
        "is_admin": user.get("is_admin", False)
    }


def append_message(batch: WriteBatch, ticket_id: str, message: dict) -> str:
    """Queue a message and the ticket's last-message summary on ``batch``"""
    message_id = new_id()
    batch.set(MESSAGES, message_id, {
        "ticket_id": ticket_id,
        "is_bot_message": False,
        "created_at": SERVER_TIMESTAMP,
        **message
    })
    batch.update(TICKETS, ticket_id, {
        "last_message": message.get("text", ""),
        "last_message_at": SERVER_TIMESTAMP
    })
    return message_id


def ticket_subject(user: dict, data: SupportTicketCreate) -> str:
    if data.subject:
        return data.subject
    name = user.get("display_name", "")
    if data.type == "quote":
        return f"Orçamento - {data.service_name or 'serviço'} - {name}"
    if data.type == "purchase":
        return f"Compra - {data.service_name or 'produto'} - {name}"
    return f"Ticket de Suporte - {name}"


class TicketService:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_ticket(self, ticket_id: str) -> dict:
        try:
            return await self.store.get(TICKETS, ticket_id)
        except DocumentNotFound:
            raise TicketNotFound()

    async def get_visible_ticket(self, user: dict, ticket_id: str) -> dict:
        ticket = await self.get_ticket(ticket_id)
        if not user.get("is_admin") and ticket.get("user_id") != user["id"]:
            # Do not reveal other users' tickets
            raise TicketNotFound()
        return ticket

    async def get_message(self, ticket_id: str, message_id: str) -> dict:
        try:
            message = await self.store.get(MESSAGES, message_id)
        except DocumentNotFound:
            raise MessageNotFound()
        if message.get("ticket_id") != ticket_id:
            raise MessageNotFound()
        return message

    async def list_messages(self, ticket_id: str) -> List[dict]:
        return await self.store.query(MESSAGES, {"ticket_id": ticket_id}, order_by=[("created_at", 1)])

    async def list_tickets(
        self,
        user_id: str = None,
        status: str = None,
        ticket_type: str = None,
        limit: int = 100
    ) -> List[dict]:
        filters = {}
        if user_id:
            filters["user_id"] = user_id
        if status:
            filters["status"] = status
        if ticket_type:
            filters["type"] = ticket_type
        return await self.store.query(TICKETS, filters, order_by=[("created_at", -1)], limit=limit)

    async def create_ticket(
        self,
        user: dict,
        data: SupportTicketCreate,
        related_ticket_id: Optional[str] = None,
        related_contract_id: Optional[str] = None
    ) -> dict:
        ticket_id = new_id()
        ticket = {
            "subject": ticket_subject(user, data),
            "status": "open",
            "user_id": user["id"],
            "user_name": user.get("display_name", ""),
            "type": data.type,
            "related_ticket_id": related_ticket_id,
            "related_contract_id": related_contract_id,
            "last_message": None,
            "last_message_at": None,
            "created_at": SERVER_TIMESTAMP
        }
        batch = self.store.batch()
        batch.set(TICKETS, ticket_id, ticket)
        append_message(batch, ticket_id, {
            "kind": "text",
            "text": (
                f"Olá {user.get('display_name', '')}! Descreva seu problema em detalhes "
                "e um administrador irá respondê-lo em breve."
            ),
            "author": SUPPORT_BOT,
            "is_bot_message": True,
            "reply_to": None
        })
        await batch.commit()
        logger.info("Ticket %s (%s) opened by user %s", ticket_id, data.type, user["id"])
        return await self.get_ticket(ticket_id)

    async def post_message(self, user: dict, ticket_id: str, text: str, reply_to_id: str = None) -> dict:
        ticket = await self.get_visible_ticket(user, ticket_id)
        if ticket.get("status") == "closed":
            raise TicketClosed()

        reply_to = None
        if reply_to_id:
            target = await self.get_message(ticket_id, reply_to_id)
            reply_to = {
                "message_id": target["id"],
                "text": target.get("text", ""),
                "author_name": target.get("author", {}).get("name", "")
            }

        batch = self.store.batch()
        message_id = append_message(batch, ticket_id, {
            "kind": "text",
            "text": text,
            "author": author_of(user),
            "reply_to": reply_to
        })
        await batch.commit()
        return await self.store.get(MESSAGES, message_id)

    async def set_status(self, admin: dict, ticket_id: str, status: str) -> dict:
        if not admin.get("is_admin"):
            raise Forbidden("Only administrators can change ticket status")
        ticket = await self.get_ticket(ticket_id)
        await self.store.update(TICKETS, ticket_id, {"status": status})
        return {"old_status": ticket.get("status"), "status": status}

    async def delete_ticket(self, admin: dict, ticket_id: str) -> int:
        """Delete a ticket and every message in it; returns the message count"""
        if not admin.get("is_admin"):
            raise Forbidden("Only administrators can delete tickets")
        await self.get_ticket(ticket_id)
        messages = await self.list_messages(ticket_id)
        batch = self.store.batch()
        for message in messages:
            batch.delete(MESSAGES, message["id"])
        batch.delete(TICKETS, ticket_id)
        await batch.commit()
        logger.info("Ticket %s deleted with %d message(s)", ticket_id, len(messages))
        return len(messages)
