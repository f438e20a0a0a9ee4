from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from stepflow.api.routes import router
from stepflow.api.deps import get_registry
from stepflow.core.errors import ValidationError
from stepflow.observability.logging import log
from stepflow.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_registry().gateway.close()


app = FastAPI(title="Stepped Workflow API", lifespan=lifespan)

origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "Workflow API is running. Use /health and POST /workflows with {role}.",
    }


@app.get("/health")
def health():
    return {"status": "ok", "mocks": settings.USE_MOCKS, "activeWorkflows": len(get_registry())}


@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    # Field-keyed messages so the phase view can re-prompt next to each input
    log(event="validation_rejected", path=request.url.path, fields=sorted(exc.errors))
    return JSONResponse(status_code=422, content={"errors": exc.errors})


print(f"[boot] USE_MOCKS={settings.USE_MOCKS} MAX_ACTIVE_WORKFLOWS={settings.MAX_ACTIVE_WORKFLOWS}")


def run() -> None:
    import uvicorn

    uvicorn.run("stepflow.main:app", host=settings.HOST, port=settings.PORT)
