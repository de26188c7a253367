"""Core 패키지 초기화 (경량화)

모듈 간 순환 의존을 피하기 위해 최소한의 심볼만 노출합니다.
설정은 get_settings()로 필요할 때 생성합니다.
"""
from .config import WebhookConfig, get_settings
from .responses import (
    APIResponse, success_response, error_response,
    BusinessException, AuthenticationException,
    NotFoundException, InvalidSignatureException, StoreWriteFailure,
)

__all__ = [
    'get_settings',
    'WebhookConfig',
    'APIResponse',
    'success_response',
    'error_response',
    'BusinessException',
    'AuthenticationException',
    'NotFoundException',
    'InvalidSignatureException',
    'StoreWriteFailure',
]
