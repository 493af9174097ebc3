import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from rental_checkout.database import engine
from rental_checkout.infrastructure.db_schema import metadata
from rental_checkout.presentation.api import router

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Таблицы созданы")
    except Exception as e:
        logger.info(f"Таблицы не созданы: {e}")

    yield

    await engine.dispose()
    logger.info("Приложение останавливается...")


app = FastAPI(
    title="Rental Checkout Service",
    description="Оформление заказов аренды, оплата и статусы",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Rental Checkout Service работает"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
