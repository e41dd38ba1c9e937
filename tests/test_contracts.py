"""Contract engine: generation, signature and the cancellation handshake"""
import pytest
import pytest_asyncio

from conftest import fixed_clock
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
)
from pecc.db import StoreError
from pecc.models.support import CancellationMessage, ContractData, ContractMessage, SupportTicketCreate, parse_message
from pecc.services.contracts import ContractService, is_cancel_command
from pecc.services.tickets import TicketService


def contract_data(client_name="João Silva"):
    return ContractData(
        client_name=client_name,
        client_cpf="123.456.789-00",
        object="Desenvolvimento de mod personalizado",
        deadline="30 dias",
        price="R$ 500,00"
    )


@pytest.fixture
def contracts(store):
    return ContractService(store, clock=fixed_clock)


@pytest.fixture
def tickets(store):
    return TicketService(store)


@pytest_asyncio.fixture
async def ticket(tickets, client_user):
    return await tickets.create_ticket(client_user, SupportTicketCreate(type="quote", service_name="Mod"))


@pytest_asyncio.fixture
async def contract(contracts, ticket, admin_user):
    return await contracts.generate_contract(admin_user, ticket["id"], contract_data())


@pytest_asyncio.fixture
async def cancellation_ticket(contracts, ticket, contract, client_user):
    return await contracts.open_cancellation_ticket(client_user, ticket["id"], contract["id"])


@pytest_asyncio.fixture
async def cancellation(contracts, cancellation_ticket, admin_user):
    return await contracts.request_cancellation(admin_user, cancellation_ticket["id"])


class TestGenerate:

    @pytest.mark.asyncio
    async def test_contract_message_is_pending(self, store, ticket, contract):
        message = parse_message(contract)
        assert isinstance(message, ContractMessage)
        assert message.contract_status == "pending"
        assert message.contract_data.client_name == "João Silva"
        assert message.author.is_admin is True

        stored_ticket = await store.get("support_tickets", ticket["id"])
        assert stored_ticket["last_message"] == contract["text"]

    @pytest.mark.asyncio
    async def test_only_admin_generates(self, contracts, ticket, client_user):
        with pytest.raises(Forbidden):
            await contracts.generate_contract(client_user, ticket["id"], contract_data())

    @pytest.mark.asyncio
    async def test_closed_ticket_rejected(self, contracts, tickets, ticket, admin_user):
        await tickets.set_status(admin_user, ticket["id"], "closed")
        with pytest.raises(TicketClosed):
            await contracts.generate_contract(admin_user, ticket["id"], contract_data())

    def test_contract_fields_are_validated(self):
        with pytest.raises(ValueError):
            ContractData(client_name="Jo", client_cpf="123", object="curto", deadline="", price="")


class TestSign:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("typed", ["João Silva", "joão silva", "  JOÃO SILVA  "])
    async def test_signature_is_case_insensitive(self, store, contracts, ticket, contract, client_user, typed):
        signed = await contracts.sign_contract(client_user, ticket["id"], contract["id"], typed)

        assert signed["contract_status"] == "signed"
        assert signed["signed_at"]
        assert "João Silva" in signed["text"]
        assert "15/01/2025 12:00" in signed["text"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("typed", ["Joao Silva", "João", "João  Silva", ""])
    async def test_signature_mismatch(self, store, contracts, ticket, contract, client_user, typed):
        with pytest.raises(SignatureMismatch):
            await contracts.sign_contract(client_user, ticket["id"], contract["id"], typed)
        stored = await store.get("ticket_messages", contract["id"])
        assert stored["contract_status"] == "pending"

    @pytest.mark.asyncio
    async def test_signed_contract_can_not_be_signed_again(self, contracts, ticket, contract, client_user):
        await contracts.sign_contract(client_user, ticket["id"], contract["id"], "João Silva")
        with pytest.raises(ContractNotPending):
            await contracts.sign_contract(client_user, ticket["id"], contract["id"], "João Silva")

    @pytest.mark.asyncio
    async def test_admin_and_strangers_can_not_sign(self, contracts, ticket, contract, admin_user, other_user):
        with pytest.raises(Forbidden):
            await contracts.sign_contract(admin_user, ticket["id"], contract["id"], "João Silva")
        with pytest.raises(Forbidden):
            await contracts.sign_contract(other_user, ticket["id"], contract["id"], "João Silva")

    @pytest.mark.asyncio
    async def test_text_message_is_not_a_contract(self, contracts, tickets, ticket, client_user):
        message = await tickets.post_message(client_user, ticket["id"], "Olá")
        with pytest.raises(ContractNotFound):
            await contracts.sign_contract(client_user, ticket["id"], message["id"], "João Silva")


class TestRequestCancellation:

    @pytest.mark.asyncio
    async def test_cancellation_ticket_links_back(self, cancellation_ticket, ticket, contract, client_user):
        assert cancellation_ticket["related_ticket_id"] == ticket["id"]
        assert cancellation_ticket["related_contract_id"] == contract["id"]
        assert cancellation_ticket["user_id"] == client_user["id"]
        assert cancellation_ticket["subject"].startswith("Cancelamento de contrato")

    @pytest.mark.asyncio
    async def test_request_posts_pending_cancellation(self, cancellation, ticket, contract):
        message = parse_message(cancellation)
        assert isinstance(message, CancellationMessage)
        assert message.cancellation_status == "pending"
        assert message.cancellation_data.original_ticket_id == ticket["id"]
        assert message.cancellation_data.original_contract_id == contract["id"]
        assert "CANCELAR" in message.text

    @pytest.mark.asyncio
    async def test_second_request_while_one_is_pending_is_rejected(
        self, store, contracts, cancellation_ticket, cancellation, admin_user
    ):
        with pytest.raises(CancellationNotPending):
            await contracts.request_cancellation(admin_user, cancellation_ticket["id"])

        pending = await store.count("ticket_messages", {
            "ticket_id": cancellation_ticket["id"],
            "kind": "cancellation",
            "cancellation_status": "pending"
        })
        assert pending == 1

    @pytest.mark.asyncio
    async def test_plain_ticket_is_not_a_cancellation_ticket(self, contracts, ticket, contract, admin_user):
        with pytest.raises(NotACancellationTicket):
            await contracts.request_cancellation(admin_user, ticket["id"])

    @pytest.mark.asyncio
    async def test_only_admin_requests(self, contracts, cancellation_ticket, client_user):
        with pytest.raises(Forbidden):
            await contracts.request_cancellation(client_user, cancellation_ticket["id"])

    @pytest.mark.asyncio
    async def test_deleted_contract_is_reported(self, store, contracts, cancellation_ticket, contract, admin_user):
        await store.delete("ticket_messages", contract["id"])
        with pytest.raises(ContractNotFound):
            await contracts.request_cancellation(admin_user, cancellation_ticket["id"])

    @pytest.mark.asyncio
    async def test_signed_contract_can_not_be_cancelled(
        self, contracts, ticket, contract, cancellation_ticket, client_user, admin_user
    ):
        await contracts.sign_contract(client_user, ticket["id"], contract["id"], "João Silva")
        with pytest.raises(ContractNotPending):
            await contracts.request_cancellation(admin_user, cancellation_ticket["id"])

    @pytest.mark.asyncio
    async def test_only_pending_contracts_open_cancellation_tickets(
        self, contracts, ticket, contract, client_user
    ):
        await contracts.sign_contract(client_user, ticket["id"], contract["id"], "João Silva")
        with pytest.raises(ContractNotPending):
            await contracts.open_cancellation_ticket(client_user, ticket["id"], contract["id"])


class TestConfirmCancellation:

    @pytest.mark.asyncio
    async def test_confirm_cancels_contract_and_closes_ticket(
        self, store, contracts, cancellation_ticket, cancellation, contract, ticket, client_user
    ):
        # When
        confirmed = await contracts.confirm_cancellation(
            client_user, cancellation_ticket["id"], cancellation["id"], "CANCELAR"
        )

        # Then
        assert confirmed["cancellation_status"] == "confirmed"
        assert confirmed["confirmed_at"]

        original = await store.get("ticket_messages", contract["id"])
        assert original["contract_status"] == "cancelled"
        assert original["cancelled_at"]

        closed = await store.get("support_tickets", cancellation_ticket["id"])
        assert closed["status"] == "closed"
        assert (await store.get("support_tickets", ticket["id"]))["status"] == "open"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["cancelar", "Cancelar", " CANCELAR", "CANCELAR ", "SIM"])
    async def test_token_must_match_exactly(
        self, store, contracts, cancellation_ticket, cancellation, contract, client_user, token
    ):
        with pytest.raises(CancellationTokenMismatch):
            await contracts.confirm_cancellation(client_user, cancellation_ticket["id"], cancellation["id"], token)
        assert (await store.get("ticket_messages", contract["id"]))["contract_status"] == "pending"

    @pytest.mark.asyncio
    async def test_confirmation_is_final(self, contracts, cancellation_ticket, cancellation, client_user):
        await contracts.confirm_cancellation(client_user, cancellation_ticket["id"], cancellation["id"], "CANCELAR")
        with pytest.raises(CancellationNotPending):
            await contracts.confirm_cancellation(
                client_user, cancellation_ticket["id"], cancellation["id"], "CANCELAR"
            )

    @pytest.mark.asyncio
    async def test_cancelled_contract_can_not_be_signed(
        self, contracts, ticket, contract, cancellation_ticket, cancellation, client_user
    ):
        await contracts.confirm_cancellation(client_user, cancellation_ticket["id"], cancellation["id"], "CANCELAR")
        with pytest.raises(ContractNotPending):
            await contracts.sign_contract(client_user, ticket["id"], contract["id"], "João Silva")

    @pytest.mark.asyncio
    async def test_contract_signed_meanwhile_blocks_confirmation(
        self, store, contracts, ticket, contract, cancellation_ticket, cancellation, client_user
    ):
        await contracts.sign_contract(client_user, ticket["id"], contract["id"], "João Silva")

        with pytest.raises(ContractNotPending):
            await contracts.confirm_cancellation(
                client_user, cancellation_ticket["id"], cancellation["id"], "CANCELAR"
            )

        assert (await store.get("ticket_messages", cancellation["id"]))["cancellation_status"] == "pending"
        assert (await store.get("support_tickets", cancellation_ticket["id"]))["status"] == "open"

    @pytest.mark.asyncio
    async def test_store_failure_leaves_every_document_unchanged(
        self, store, contracts, contract, cancellation_ticket, cancellation, client_user
    ):
        store.fail_collection = "support_tickets"

        with pytest.raises(StoreError):
            await contracts.confirm_cancellation(
                client_user, cancellation_ticket["id"], cancellation["id"], "CANCELAR"
            )

        assert (await store.get("ticket_messages", cancellation["id"]))["cancellation_status"] == "pending"
        assert (await store.get("ticket_messages", contract["id"]))["contract_status"] == "pending"
        assert (await store.get("support_tickets", cancellation_ticket["id"]))["status"] == "open"

    @pytest.mark.asyncio
    async def test_admin_and_strangers_can_not_confirm(
        self, contracts, cancellation_ticket, cancellation, admin_user, other_user
    ):
        for actor in (admin_user, other_user):
            with pytest.raises(Forbidden):
                await contracts.confirm_cancellation(
                    actor, cancellation_ticket["id"], cancellation["id"], "CANCELAR"
                )

    @pytest.mark.asyncio
    async def test_contract_message_is_not_a_cancellation(self, contracts, ticket, contract, client_user):
        with pytest.raises(MessageNotFound):
            await contracts.confirm_cancellation(client_user, ticket["id"], contract["id"], "CANCELAR")


class TestCancelCommand:

    @pytest.mark.parametrize("text, expected", [
        ("/cancelar", True),
        ("  /CANCELAR  ", True),
        ("/cancelar agora", True),
        ("/cancelarfoo", False),
        ("/cancelar_tudo agora", False),
        ("quero cancelar", False),
        ("", False),
        (None, False),
    ])
    def test_command_detection(self, text, expected):
        assert is_cancel_command(text) is expected


class TestListUserContracts:

    @pytest.mark.asyncio
    async def test_lists_only_own_contracts_newest_first(
        self, store, contracts, tickets, ticket, contract, client_user, other_user, admin_user
    ):
        second_ticket = await tickets.create_ticket(client_user, SupportTicketCreate())
        newer = await contracts.generate_contract(admin_user, second_ticket["id"], contract_data())
        foreign_ticket = await tickets.create_ticket(other_user, SupportTicketCreate())
        await contracts.generate_contract(admin_user, foreign_ticket["id"], contract_data("Ana Lima"))
        await store.update("ticket_messages", contract["id"], {"created_at": "2024-01-01T00:00:00+00:00"})

        listed = await contracts.list_user_contracts(client_user["id"])

        assert [c["id"] for c in listed] == [newer["id"], contract["id"]]

    @pytest.mark.asyncio
    async def test_groups_filter_by_status(self, contracts, ticket, contract, client_user):
        assert [c["id"] for c in await contracts.list_user_contracts(client_user["id"], "active")] == [contract["id"]]
        assert await contracts.list_user_contracts(client_user["id"], "finalized") == []

        await contracts.sign_contract(client_user, ticket["id"], contract["id"], "João Silva")

        assert await contracts.list_user_contracts(client_user["id"], "pending") == []
        assert [c["id"] for c in await contracts.list_user_contracts(client_user["id"], "finalized")] == [contract["id"]]

    @pytest.mark.asyncio
    async def test_user_without_tickets(self, contracts, other_user):
        assert await contracts.list_user_contracts(other_user["id"]) == []
