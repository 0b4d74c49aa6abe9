from .base import EntityKind, TimestampMixin, entity
from .catalog import (
    Account,
    Base,
    BaseStatus,
    Collection,
    Colorway,
    ColorwayStatus,
    COLORS,
    Media,
    Technique,
    Weight,
    collection_colorways,
)
from .inventory import Inventory, SyncStatus
from .orders import Customer, Order, OrderItem, OrderStatus
from .integration import (
    ExternalIdentifier,
    ExternalKind,
    Integration,
    IntegrationType,
    LogStatus,
    SyncLog,
    SyncSource,
    normalize_shop_domain,
)
