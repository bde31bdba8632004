from fastapi import FastAPI, Request
from dotenv import load_dotenv

from app.routes import notifications

# Ensure .env values are loaded even if uvicorn is launched without `dotenv run`;
# the spawned notifier inherits this environment.
load_dotenv(override=True)


app = FastAPI()


app.include_router(notifications.router)


@app.get("/health")
def health():
    return {"ok": True}


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    return response
