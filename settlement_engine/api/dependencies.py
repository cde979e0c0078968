"""Dependency injection for FastAPI endpoints"""

from fastapi import Request
from settlement_engine.infrastructure.clients.payment_gateway import PaymentGatewayClient
from settlement_engine.infrastructure.clients.notifications import NotificationClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_gateway_client() -> PaymentGatewayClient:
    """Provide payment gateway client instance"""
    return PaymentGatewayClient()


def get_notification_client() -> NotificationClient:
    """Provide notification webhook client instance"""
    return NotificationClient()
