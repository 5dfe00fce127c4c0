import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coach.errors import CoachError
from coach.router import router as coach_router

from database import engine
import models
import coach.models  # registers the coach tables on Base

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Veritabanı tablolarını oluştur (Yoksa)
models.Base.metadata.create_all(bind=engine)

# FastAPI Uygulamasını Başlat
app = FastAPI(
    title="Compass Coach Turn Service",
    description="Turn-based coaching conversations backed by Gemini, with memory extraction and engagement tracking.",
    version="1.0.0"
)

# CORS Ayarları (Frontend bağlantısı için)
# Production'da allow_origins kısmına sadece frontend domainini ekleyin.
origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:8000",
    "http://localhost:8081",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CoachError)
async def coach_error_handler(request: Request, exc: CoachError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error}: {exc.details}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


# Router'ları Bağla
app.include_router(coach_router)


@app.get("/")
async def health_check():
    """
    Sistem Sağlık Durumu Kontrolü
    """
    return {
        "status": "healthy",
        "service": "Compass Coach Turn Service",
        "version": "1.0.0"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
