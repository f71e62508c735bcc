# carebill/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from carebill import __version__
from carebill.core.config import settings
from carebill.api.exception_handlers import register_exception_handlers
from carebill.api.router import api_router

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix=settings.API_V1_STR)


# Health
@app.get("/")
def root():
    return {"message": "CareBill billing API running", "version": __version__}
