from pydantic import BaseModel


class DashboardStats(BaseModel):
    total_users: int
    total_orders: int
    pending_orders: int
    processing_orders: int
    completed_orders: int
    failed_orders: int
    cancelled_orders: int
    completed_volume_inr: float
    open_tickets: int
