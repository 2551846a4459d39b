import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from letterbox.routers import graphics, ingest

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="TTN letterbox sensor")

# comma separated list of dashboard origins
origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(ingest.router)
app.include_router(graphics.router)


@app.get("/health")
def health():
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("letterbox.main:app", host="0.0.0.0", port=8000, reload=True)
