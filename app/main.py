import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import config
from app.db import engine, Base
from app.error_handlers import register_exception_handlers

from app.models.user import User
from app.models.customer import Customer
from app.models.order import Order
from app.models.campaign import Campaign
from app.models.communication_log import CommunicationLog

from app.routes.auth import router as auth_router
from app.routes.customers import router as customers_router
from app.routes.orders import router as orders_router
from app.routes.audience import router as audience_router
from app.routes.ai import router as ai_router
from app.routes.campaigns import router as campaigns_router
from app.routes.vendor import router as vendor_router
from app.routes.delivery import router as delivery_router
from app.routes.dashboard import router as dashboard_router

from app.services.delivery_service import DeliveryDispatcher
from app.services.vendor_service import VendorSimulator

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Campaign CRM")

# ─── CORS ─────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)
    app.state.dispatcher = DeliveryDispatcher()
    app.state.vendor_simulator = VendorSimulator()


@app.on_event("shutdown")
async def shutdown():
    await app.state.dispatcher.shutdown()
    await app.state.vendor_simulator.shutdown()


app.include_router(auth_router)
app.include_router(customers_router)
app.include_router(orders_router)
app.include_router(audience_router)
app.include_router(ai_router)
app.include_router(campaigns_router)
app.include_router(vendor_router)
app.include_router(delivery_router)
app.include_router(dashboard_router)


@app.get("/api/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
