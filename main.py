# main.py (project root)
from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn
from app.db import mongodb
from app.endpoints import (
    warehouse_stock_endpoints, institution_stock_endpoints, requirement_endpoints, logistic_endpoints,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await mongodb.connect_to_mongo()
    yield
    await mongodb.close_mongo_connection()


app = FastAPI(title="Pharma Inventory - Stock Reservation & Fulfillment", lifespan=lifespan)


app.include_router(warehouse_stock_endpoints.router, prefix="/api")
app.include_router(institution_stock_endpoints.router, prefix="/api")
app.include_router(requirement_endpoints.router, prefix="/api")
app.include_router(logistic_endpoints.router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Pharma Inventory API running"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
