from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging
import os

from dotenv import load_dotenv
from routes.users_routes import users_router
from routes.auth_routes import auth_router
from database import create_db_and_tables
from exceptions import AuthError, error_response
import uvicorn

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

create_db_and_tables()

app = FastAPI(title="GunEvent API")

app.include_router(auth_router)
app.include_router(users_router)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    return error_response(exc)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "An unexpected error occurred"})


@app.get("/")
def home():
    return {"message": "GunEvent API"}

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8001, reload=True)
