"""
Service wiring for the API.

`Services` builds the whole pipeline from Settings once per process. Routers
depend on `get_services`; tests override it with a container built around an
in-memory store and a fake gateway.
"""

import logging
import threading
from typing import Optional

from .config import Settings, settings
from .documents import DocumentGenerator, Renderer
from .order_store import InMemoryOrderStore, OrderStore, SqlOrderStore
from .orders import OrderService
from .payments import PaymentGateway, StripeGateway
from .pricing_engine import PriceQuoteBuilder
from .schemas import DocumentType, Order
from .shipping import ShippingEngine
from .state_machine import PaymentStateMachine
from .tax import CustomFabricationPolicy, TaxEngine, TaxTable
from .validator import ConfigValidator
from .webhook_worker import WebhookWorker

logger = logging.getLogger(__name__)


def build_order_store(config: Settings) -> OrderStore:
    if config.ORDER_STORE == "memory":
        logger.info("Using in-memory order store")
        return InMemoryOrderStore()

    from .database import Base, SessionLocal, engine
    from . import models  # noqa: F401  registers OrderRecord

    Base.metadata.create_all(bind=engine)
    return SqlOrderStore(SessionLocal)


class Services:

    def __init__(self, config: Settings, store: Optional[OrderStore] = None,
                 gateway: Optional[PaymentGateway] = None,
                 renderer: Optional[Renderer] = None):
        self.settings = config
        self.store = store or build_order_store(config)
        self.gateway = gateway or StripeGateway(
            secret_key=config.STRIPE_SECRET_KEY,
            webhook_secret=config.STRIPE_WEBHOOK_SECRET,
            tolerance=config.STRIPE_WEBHOOK_TOLERANCE,
        )

        self.validator = ConfigValidator()
        self.shipping = ShippingEngine()
        self.tax = TaxEngine(TaxTable(
            custom_fabrication_policy=CustomFabricationPolicy(config.CUSTOM_FAB_TAX_POLICY),
        ))
        self.quote_builder = PriceQuoteBuilder(self.validator, self.shipping, self.tax)

        self.orders = OrderService(
            self.store, self.quote_builder, self.gateway,
            currency=config.CURRENCY, lead_days=config.FULFILLMENT_LEAD_DAYS,
        )
        self.documents = DocumentGenerator(
            self.store,
            upload_dir=config.UPLOAD_DIR,
            url_prefix=config.UPLOAD_URL_PREFIX,
            company={
                "name": config.COMPANY_NAME,
                "email": config.COMPANY_EMAIL,
                "phone": config.COMPANY_PHONE,
            },
            quote_valid_days=config.QUOTE_VALID_DAYS,
            renderer=renderer,
        )

        self.state_machine = PaymentStateMachine(self.store)
        if config.AUTO_GENERATE_SHOP_PACKET:
            self.state_machine.on_paid(self._generate_shop_packet)
        self.webhooks = WebhookWorker(
            self.state_machine,
            inline=config.WEBHOOK_INLINE,
            max_attempts=config.WEBHOOK_MAX_ATTEMPTS,
            retry_delay=config.WEBHOOK_RETRY_DELAY,
        )

    def _generate_shop_packet(self, order: Order) -> None:
        self.documents.ensure_document(order.job_id, DocumentType.SHOP_PACKET)

    def start(self) -> None:
        self.webhooks.start()

    def shutdown(self) -> None:
        self.webhooks.stop()


_services: Optional[Services] = None
_services_lock = threading.Lock()


def get_services() -> Services:
    global _services
    if _services is None:
        with _services_lock:
            if _services is None:
                _services = Services(settings)
    return _services
