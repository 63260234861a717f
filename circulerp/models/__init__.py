"""Central model registry: import all models so metadata.create_all sees every table."""

from circulerp.database import Base  # noqa: F401

from circulerp.models.user import User  # noqa: F401
from circulerp.models.customer import Customer  # noqa: F401
from circulerp.models.supplier import Supplier  # noqa: F401
from circulerp.models.product import Product  # noqa: F401
from circulerp.models.order import Order, OrderItem  # noqa: F401
from circulerp.models.invoice import Invoice, WireTransfer  # noqa: F401
from circulerp.models.payment import Payment  # noqa: F401
from circulerp.models.shipment import Shipment  # noqa: F401
from circulerp.models.production import ProductionBatch  # noqa: F401
from circulerp.models.inventory import InventoryItem  # noqa: F401
from circulerp.models.status_history import StatusHistory  # noqa: F401
from circulerp.models.warehouse_stock import WarehouseStock, WarehouseStockUpload  # noqa: F401
