"""
웹훅 이벤트 및 플랜 응답 스키마
"""
from .webhook import (
    CheckoutSessionCompleted,
    CheckoutSessionPayload,
    FlutterwaveData,
    FlutterwaveEvent,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    InvoicePayload,
    StripeEvent,
    SubscriptionDeleted,
    SubscriptionPayload,
    SubscriptionUpdated,
    UnrecognizedEvent,
    parse_stripe_event,
)
from .plans import EffectivePlanResponse, PlanInfoResponse

__all__ = [
    "CheckoutSessionCompleted",
    "CheckoutSessionPayload",
    "EffectivePlanResponse",
    "FlutterwaveData",
    "FlutterwaveEvent",
    "InvoicePaymentFailed",
    "InvoicePaymentSucceeded",
    "InvoicePayload",
    "PlanInfoResponse",
    "StripeEvent",
    "SubscriptionDeleted",
    "SubscriptionPayload",
    "SubscriptionUpdated",
    "UnrecognizedEvent",
    "parse_stripe_event",
]
