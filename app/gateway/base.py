"""Base class for payment gateways"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: Optional[str]


@dataclass(frozen=True)
class Subscription:
    id: str
    status: str
    client_secret: Optional[str] = None


class PaymentGateway(ABC):
    """Abstract payment gateway. Every call may block on the network and raises GatewayError on failure."""

    @abstractmethod
    def create_payment_intent(self, amount: int, currency: str, metadata: dict, receipt_email: Optional[str] = None) -> PaymentIntent:
        """Create a one-time payment intent for amount (in cents)"""
        pass

    @abstractmethod
    def create_customer(self, email: str, name: str, metadata: Optional[dict] = None) -> str:
        """Create a customer and return its gateway id"""
        pass

    @abstractmethod
    def create_subscription(self, customer_id: str, amount: int, currency: str, frequency: str, metadata: Optional[dict] = None) -> Subscription:
        """Create a subscription charging amount (in cents) every billing period of frequency"""
        pass

    @abstractmethod
    def pause_subscription(self, subscription_id: str) -> None:
        pass

    @abstractmethod
    def resume_subscription(self, subscription_id: str) -> None:
        pass

    @abstractmethod
    def cancel_subscription(self, subscription_id: str) -> None:
        pass

    @abstractmethod
    def verify_event(self, payload: bytes, signature: str) -> dict:
        """
        Check the authenticity of an inbound notification
        
        Returns:
            dict: the decoded event
        
        Raises:
            InvalidSignature: if the payload was not signed by the gateway
        """
        pass

    def parse_event(self, payload: bytes, signature: str):
        """Verify then classify an inbound notification into a GatewayEvent"""
        from app.gateway.events import classify_event
        return classify_event(self.verify_event(payload, signature))
