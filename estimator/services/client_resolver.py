"""Client resolution for the estimate form.

Finds or creates the customer the project is created for, and implements
the contact disambiguation rules used when an existing client is picked.
"""

from typing import List, Optional

import structlog

from config.settings import settings
from config.errors import RemoteError, ValidationError
from models.scopestack import Client, Contact, SalesExecutive
from models.workflow import ContactFields, ContactMode
from services.scopestack_client import ScopeStackClient, resource_ref

logger = structlog.get_logger(__name__)


class ClientResolver:
    """Type-ahead search and find-or-create for clients."""

    def __init__(self, api: ScopeStackClient, min_search_length: Optional[int] = None):
        self.api = api
        self.min_search_length = (
            settings.client_search_min_length if min_search_length is None else min_search_length
        )

    def _is_searchable(self, term: Optional[str]) -> bool:
        return bool(term) and len(term.strip()) >= self.min_search_length

    async def search_clients(self, term: str) -> List[Client]:
        """Active clients matching `term`, with contacts expanded.

        Short terms return [] without touching the API. Search failures are
        logged and return [] so typing keeps working.
        """
        if not self._is_searchable(term):
            return []

        params = {
            "filter[name]": term.strip(),
            "filter[active]": "true",
            "include": "contacts",
        }
        try:
            result = await self.api.list_all("/v1/clients", stage="client_search", params=params)
        except RemoteError as e:
            logger.warning("client_search_failed", term=term, error=e.message, status_code=e.status_code)
            return []

        clients = [Client.from_resource(item, result["included"]) for item in result["data"]]
        logger.debug("client_search_completed", term=term, count=len(clients))
        return clients

    async def search_sales_executives(self, term: str) -> List[SalesExecutive]:
        """Sales executives matching `term`; same gating as client search."""
        if not self._is_searchable(term):
            return []

        params = {"filter[name]": term.strip(), "filter[active]": "true"}
        try:
            result = await self.api.list_all("/v1/sales-executives", stage="executive_search", params=params)
        except RemoteError as e:
            logger.warning("executive_search_failed", term=term, error=e.message, status_code=e.status_code)
            return []

        return [SalesExecutive.from_resource(item) for item in result["data"]]

    async def create_client(self, name: str, account_id: str) -> Client:
        """Create an active client under the account."""
        payload = {
            "data": {
                "type": "clients",
                "attributes": {"name": name.strip(), "active": True},
                "relationships": {"account": resource_ref("accounts", account_id)},
            }
        }
        data = await self.api.post("/v1/clients", payload, stage="client")
        client = Client.from_resource(data)
        logger.info("client_created", client_id=client.id, name=client.name)
        return client

    async def resolve_or_create_client(
        self,
        name: str,
        account_id: str,
        selection: Optional[Client] = None
    ) -> str:
        """Return the id of the client to create the project for.

        A previously selected client is used as-is; otherwise a new client
        is created with the typed name.

        Raises:
            ValidationError: No selection and no name typed.
            RemoteError: Client creation failed.
        """
        if selection is not None:
            logger.info("client_reused", client_id=selection.id)
            return selection.id

        if not name or not name.strip():
            raise ValidationError(
                message="Please select an existing client or enter a new client name.",
                field="clientName",
            )

        client = await self.create_client(name, account_id)
        return client.id


class ContactSelection:
    """Contact fields state for the selected client.

    - no contacts: new-contact mode, fields cleared
    - one contact: selected automatically, all four fields filled
    - several: fields stay empty until `choose_contact` is called

    `use_new_contact` can be called at any time and clears the fields.
    """

    def __init__(self):
        self.client: Optional[Client] = None
        self.contact: Optional[Contact] = None
        self.mode = ContactMode.NEW
        self.fields = ContactFields()

    @property
    def options(self) -> List[Contact]:
        return list(self.client.contacts) if self.client else []

    @property
    def needs_choice(self) -> bool:
        return self.mode == ContactMode.CHOOSE

    def select_client(self, client: Optional[Client]) -> ContactFields:
        self.client = client
        self.contact = None
        self.fields = ContactFields()

        contacts = self.options
        if not contacts:
            self.mode = ContactMode.NEW
        elif len(contacts) == 1:
            self.mode = ContactMode.AUTO
            self._fill(contacts[0])
        else:
            self.mode = ContactMode.CHOOSE
        return self.fields

    def choose_contact(self, contact_id: str) -> ContactFields:
        for contact in self.options:
            if contact.id == str(contact_id):
                self.mode = ContactMode.SELECTED
                self._fill(contact)
                return self.fields
        raise ValidationError(message=f"Unknown contact {contact_id}", field="contact")

    def use_new_contact(self) -> ContactFields:
        self.mode = ContactMode.NEW
        self.contact = None
        self.fields = ContactFields()
        return self.fields

    def update_fields(self, **values: str) -> ContactFields:
        """Apply user edits to the contact inputs."""
        self.fields = self.fields.model_copy(update=values)
        return self.fields

    def _fill(self, contact: Contact) -> None:
        self.contact = contact
        self.fields = ContactFields(
            name=contact.name,
            email=contact.email,
            phone=contact.phone,
            title=contact.title,
        )
