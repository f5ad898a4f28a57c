from fastapi import Request

from app.services.delivery_service import DeliveryDispatcher
from app.services.vendor_service import VendorSimulator


def get_dispatcher(request: Request) -> DeliveryDispatcher:
    return request.app.state.dispatcher


def get_vendor_simulator(request: Request) -> VendorSimulator:
    return request.app.state.vendor_simulator
