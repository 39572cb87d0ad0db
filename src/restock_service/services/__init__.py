"""Business logic services."""

from restock_service.services.demand import DemandService, NotifyResult
from restock_service.services.notifications import NotificationDispatcher
from restock_service.services.plan import PlanService
from restock_service.services.recovery import RecoveryService
from restock_service.services.restock import RestockEventHandler, RestockOutcome
from restock_service.services.shop_settings import ShopSettingsService
from restock_service.services.shops import ShopService

__all__ = [
    "DemandService",
    "NotifyResult",
    "NotificationDispatcher",
    "PlanService",
    "RecoveryService",
    "RestockEventHandler",
    "RestockOutcome",
    "ShopSettingsService",
    "ShopService",
]
