import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from video_proxy.api.endpoints import router as api_router
from video_proxy.core.config import settings

USAGE = (
    "Video proxy is running.\n"
    "Use /api/fetch?url=... to get HTML, /api/extract?url=... for JSON, "
    "and /api/download?url=... to stream."
)

app = FastAPI(title=settings.PROJECT_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.API_PREFIX)


@app.get("/", response_class=PlainTextResponse)
async def root():
    return USAGE


@app.get("/api/health")
async def health():
    return {"status": "online", "project": settings.PROJECT_NAME}


def run():
    print(f"Proxy running at http://localhost:{settings.PORT}")
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
