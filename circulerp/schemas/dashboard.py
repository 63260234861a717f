from pydantic import BaseModel


class DashboardStats(BaseModel):
    customers: int
    suppliers: int
    totalOrders: int
    activeOrders: int
    totalInvoices: int
    pendingInvoiceAmount: float
    paidInvoiceAmount: float
    totalPayments: float
    activeShipments: int
