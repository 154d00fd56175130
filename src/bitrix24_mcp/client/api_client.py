"""Bitrix24 API client implementation."""

from typing import Any

from ..models import APIConfiguration, crm_entity
from .api_client_core import Bitrix24ClientCore
from .api_client_crm import (
    CompanyService,
    ContactService,
    CrmItemService,
    DealService,
    InvoiceService,
    LeadService,
    QuoteService,
    SmartProcessItemService,
)
from .api_client_directory import CurrencyService, DepartmentService, MeasureService, PriceTypeService
from .api_client_tasks import TaskService
from .batch import DEFAULT_BATCH_SIZE
from .transport import WebhookTransport


class Bitrix24Client(Bitrix24ClientCore):
    """Client with lazily created domain services.

    Usage::

        async with Bitrix24Client.from_webhook("https://portal.bitrix24.com/rest/1/token/") as client:
            deals = await client.deals.all({"filter": {"STAGE_ID": "WON"}})
    """

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._services: dict[Any, Any] = {}

    @classmethod
    def from_config(cls, config: APIConfiguration, batch_size: int = DEFAULT_BATCH_SIZE) -> "Bitrix24Client":
        return cls(WebhookTransport(config), batch_size=batch_size)

    @classmethod
    def from_webhook(
        cls, webhook_url: str, batch_size: int = DEFAULT_BATCH_SIZE, **options: Any
    ) -> "Bitrix24Client":
        """Client for an incoming webhook; ``options`` go to ``APIConfiguration``."""
        return cls.from_config(APIConfiguration(webhook_url=webhook_url, **options), batch_size)

    def _service(self, key: Any, factory: Any) -> Any:
        if key not in self._services:
            self._services[key] = factory()
        return self._services[key]

    @property
    def deals(self) -> DealService:
        return self._service("deals", lambda: DealService(self))

    @property
    def leads(self) -> LeadService:
        return self._service("leads", lambda: LeadService(self))

    @property
    def contacts(self) -> ContactService:
        return self._service("contacts", lambda: ContactService(self))

    @property
    def companies(self) -> CompanyService:
        return self._service("companies", lambda: CompanyService(self))

    @property
    def quotes(self) -> QuoteService:
        return self._service("quotes", lambda: QuoteService(self))

    @property
    def smart_invoices(self) -> InvoiceService:
        return self._service("smart_invoices", lambda: InvoiceService(self))

    @property
    def tasks(self) -> TaskService:
        return self._service("tasks", lambda: TaskService(self))

    @property
    def currencies(self) -> CurrencyService:
        return self._service("currencies", lambda: CurrencyService(self))

    @property
    def departments(self) -> DepartmentService:
        return self._service("departments", lambda: DepartmentService(self))

    @property
    def measures(self) -> MeasureService:
        return self._service("measures", lambda: MeasureService(self))

    @property
    def price_types(self) -> PriceTypeService:
        return self._service("price_types", lambda: PriceTypeService(self))

    def smart_items(self, entity_type_id: int) -> SmartProcessItemService:
        return self._service(
            ("smart_items", entity_type_id), lambda: SmartProcessItemService(self, entity_type_id)
        )

    def crm_items(self, entity_type_id: int) -> CrmItemService:
        """Service for any CRM entity type id (static or dynamic)."""
        known = {
            crm_entity.DEAL: lambda: self.deals,
            crm_entity.LEAD: lambda: self.leads,
            crm_entity.CONTACT: lambda: self.contacts,
            crm_entity.COMPANY: lambda: self.companies,
            crm_entity.QUOTE: lambda: self.quotes,
            crm_entity.SMART_INVOICE: lambda: self.smart_invoices,
        }
        if entity_type_id in known:
            return known[entity_type_id]()
        if crm_entity.is_dynamic_type_id(entity_type_id):
            return self.smart_items(entity_type_id)
        raise ValueError(f"Unsupported CRM entityTypeId: {entity_type_id}")
