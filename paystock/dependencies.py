from fastapi import Request

from paystock.config import Settings
from paystock.database import get_db
from paystock.payments.coordinator import PaymentConfirmationCoordinator
from paystock.payments.verifier import ChannelVerifier

__all__ = ["get_db", "get_settings", "get_coordinator", "get_verifier"]


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_coordinator(request: Request) -> PaymentConfirmationCoordinator:
    return request.app.state.coordinator


def get_verifier(request: Request) -> ChannelVerifier:
    return request.app.state.verifier
