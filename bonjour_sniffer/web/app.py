from fastapi import FastAPI

from bonjour_sniffer.web.routes.classify import router as classify_router
from bonjour_sniffer.web.routes.live import router as live_router

app = FastAPI(title="bonjour-sniffer")

app.include_router(classify_router)
app.include_router(live_router)


@app.get("/health")
def health():
    return {"status": "ok"}
