import hashlib
import importlib
import logging
import time
from pathlib import Path
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from . import __version__
from .crypto_keys import Signer, load_private_key
from .errors import UpdatesError
from .resolver import UpdateResolver
from .settings import Settings, settings_from_env
from .store import BundleStore, create_store
from .delivery_log import DeliveryLog

logger = logging.getLogger("expo_updates.api")

ENGINES_DIR = Path(__file__).resolve().parent / "engines"


def _load_engines(app: FastAPI) -> dict:
  """Import every engines/*_engine.py and call its register(app)."""
  registry = {}
  for file in sorted(ENGINES_DIR.glob("*_engine.py")):
    sha = hashlib.sha256(file.read_bytes()).hexdigest()
    module = importlib.import_module(f"{__package__}.engines.{file.stem}")
    register = getattr(module, "register", None)
    if not callable(register):
      logger.warning("Engine %s has no register(app), skipped", file.name)
      continue
    register(app)
    registry[file.name] = {"sha256": sha, "loaded_at": time.time(), "status": "ok"}
    logger.debug("Engine %s loaded (sha256=%s)", file.name, sha[:12])
  return registry


def create_app(settings: Optional[Settings] = None, store: Optional[BundleStore] = None) -> FastAPI:
  """Build the update server. The signing key is read here, once, and never re-read."""
  settings = settings or settings_from_env()
  logging.getLogger("expo_updates").setLevel(settings.log_level)
  store = store or create_store(settings)
  signer = Signer(load_private_key(settings.private_key_path))

  app = FastAPI(title="Expo Updates Server", version=__version__)
  app.state.updates_context = {
    "settings": settings,
    "store": store,
    "signer": signer,
    "resolver": UpdateResolver(store, settings.asset_request_headers),
    "delivery_log": DeliveryLog(settings.event_log),
  }

  @app.exception_handler(UpdatesError)
  async def updates_error_handler(request: Request, exc: UpdatesError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

  @app.middleware("http")
  async def hardening_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers["X-Request-ID"] = request.headers.get("X-Request-ID", uuid4().hex)
    # HSTS: only when FORCE_HTTPS=true or request came via HTTPS
    if settings.force_https or request.headers.get("X-Forwarded-Proto") == "https":
      response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")
    return response

  @app.get("/health")
  def health(): return {"ok": True}

  @app.get("/status")
  def status():
    return {
      "ok": True,
      "ts": int(time.time()),
      "version": __version__,
      "store": store.kind,
      "signing": signer.configured,
      "platforms": list(settings.platforms),
      "default_channel": settings.default_channel,
      "engines": sorted(app.state.engine_registry),
    }

  app.state.engine_registry = _load_engines(app)
  logger.info("Update server ready (store=%s, signing=%s)", store.kind, "on" if signer.configured else "off")
  return app
