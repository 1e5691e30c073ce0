from fastapi import FastAPI
import logging
import uvicorn
from database import init_db
from route_modules import combined_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("gym_app")

app = FastAPI(title="Gym Access Bridge")
app.include_router(combined_router)


@app.on_event("startup")
async def startup_event():
    init_db()
    logger.info("Database tables ready")


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import os

    port = int(os.environ.get("PORT", 9007))
    uvicorn.run(app, host="0.0.0.0", port=port)
