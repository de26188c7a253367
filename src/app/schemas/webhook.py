"""
결제 공급자 웹훅 이벤트 모델

이벤트 type 별로 payload 형태가 하나씩 정해져 있고, 인식하지 못한 type은 UnrecognizedEvent로 받는다.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _ProviderModel(BaseModel):
    # 공급자가 필드를 추가해도 검증이 깨지지 않도록 허용
    model_config = ConfigDict(extra="allow")


def _customer_id(value: Any) -> Optional[str]:
    """customer 필드는 ID 문자열이거나 확장된 객체일 수 있다"""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        raw = value.get("id")
        return str(raw) if raw else None
    return None


class CustomerDetails(_ProviderModel):
    email: Optional[str] = None
    name: Optional[str] = None


class CheckoutSessionPayload(_ProviderModel):
    id: Optional[str] = None
    client_reference_id: Optional[str] = None
    customer: Optional[Union[str, Dict[str, Any]]] = None
    customer_email: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    subscription: Optional[Union[str, Dict[str, Any]]] = None
    payment_status: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def customer_id(self) -> Optional[str]:
        return _customer_id(self.customer)

    @property
    def email(self) -> Optional[str]:
        if self.customer_email:
            return self.customer_email
        if self.customer_details and self.customer_details.email:
            return self.customer_details.email
        return None


class SubscriptionPrice(_ProviderModel):
    id: Optional[str] = None


class SubscriptionItem(_ProviderModel):
    price: Optional[SubscriptionPrice] = None


class SubscriptionItems(_ProviderModel):
    data: List[SubscriptionItem] = Field(default_factory=list)


class SubscriptionPayload(_ProviderModel):
    id: Optional[str] = None
    customer: Optional[Union[str, Dict[str, Any]]] = None
    status: Optional[str] = None
    items: Optional[SubscriptionItems] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def customer_id(self) -> Optional[str]:
        return _customer_id(self.customer)

    @property
    def price_id(self) -> Optional[str]:
        if self.items and self.items.data:
            price = self.items.data[0].price
            if price and price.id:
                return price.id
        return None


class InvoicePayload(_ProviderModel):
    id: Optional[str] = None
    customer: Optional[Union[str, Dict[str, Any]]] = None
    customer_email: Optional[str] = None
    amount_paid: Optional[int] = None
    amount_due: Optional[int] = None
    currency: Optional[str] = None
    subscription: Optional[Union[str, Dict[str, Any]]] = None
    status: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def customer_id(self) -> Optional[str]:
        return _customer_id(self.customer)

    @property
    def email(self) -> Optional[str]:
        return self.customer_email


class _StripeEvent(BaseModel):
    event_id: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class CheckoutSessionCompleted(_StripeEvent):
    type: Literal["checkout.session.completed"] = "checkout.session.completed"
    payload: CheckoutSessionPayload


class SubscriptionUpdated(_StripeEvent):
    type: Literal["customer.subscription.updated"] = "customer.subscription.updated"
    payload: SubscriptionPayload


class SubscriptionDeleted(_StripeEvent):
    type: Literal["customer.subscription.deleted"] = "customer.subscription.deleted"
    payload: SubscriptionPayload


class InvoicePaymentFailed(_StripeEvent):
    type: Literal["invoice.payment_failed"] = "invoice.payment_failed"
    payload: InvoicePayload


class InvoicePaymentSucceeded(_StripeEvent):
    type: Literal["invoice.payment_succeeded"] = "invoice.payment_succeeded"
    payload: InvoicePayload


class UnrecognizedEvent(_StripeEvent):
    type: str = ""


StripeEvent = Union[
    CheckoutSessionCompleted,
    SubscriptionUpdated,
    SubscriptionDeleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    UnrecognizedEvent,
]

STRIPE_EVENT_MODELS: Dict[str, type] = {
    "checkout.session.completed": CheckoutSessionCompleted,
    "customer.subscription.updated": SubscriptionUpdated,
    "customer.subscription.deleted": SubscriptionDeleted,
    "invoice.payment_failed": InvoicePaymentFailed,
    "invoice.payment_succeeded": InvoicePaymentSucceeded,
}


def parse_stripe_event(envelope: Dict[str, Any]) -> StripeEvent:
    """검증된 이벤트 봉투 {id, type, data: {object}}를 type별 모델로 변환

    payload 형태가 맞지 않으면 pydantic.ValidationError가 발생한다.
    """
    event_type = envelope.get("type") if isinstance(envelope.get("type"), str) else ""
    event_id = envelope.get("id") if isinstance(envelope.get("id"), str) else None
    data = envelope.get("data") if isinstance(envelope.get("data"), dict) else {}
    obj = data.get("object") if isinstance(data.get("object"), dict) else {}

    model = STRIPE_EVENT_MODELS.get(event_type)
    if model is None:
        return UnrecognizedEvent(type=event_type, event_id=event_id, raw=obj)
    return model(event_id=event_id, raw=obj, payload=obj)


# Flutterwave (이전 결제 공급자)
class FlutterwaveCustomer(_ProviderModel):
    id: Optional[Union[str, int]] = None
    email: Optional[str] = None
    name: Optional[str] = None


class FlutterwaveMeta(_ProviderModel):
    plan: Optional[str] = None
    customer_id: Optional[str] = None


class FlutterwaveData(_ProviderModel):
    id: Optional[Union[str, int]] = None
    tx_ref: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    customer: Optional[FlutterwaveCustomer] = None
    meta: Optional[FlutterwaveMeta] = None

    @property
    def email(self) -> Optional[str]:
        return self.customer.email if self.customer else None

    @property
    def plan_identifier(self) -> Optional[str]:
        if self.meta and self.meta.plan:
            return self.meta.plan
        if self.tx_ref:
            return self.tx_ref.split("_")[0] or None
        return None

    @property
    def user_reference(self) -> Optional[str]:
        # meta.customer_id 에는 결제 시점의 사용자 ID가 들어있다
        if self.meta and self.meta.customer_id:
            return str(self.meta.customer_id).strip() or None
        return None


class FlutterwaveEvent(_ProviderModel):
    event: str = ""
    data: FlutterwaveData = Field(default_factory=FlutterwaveData)
