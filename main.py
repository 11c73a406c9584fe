from typing import List, Optional
from fastapi import FastAPI, HTTPException, Request, File, UploadFile, Form, Body, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import CORS_ORIGINS, GROQ_API_KEY, REASONING_KEY_SETTING
from catalog_client import CatalogServiceError, ShopifyCatalogClient
from clients import redis_client, get_http_client, close_http_client
from flow_state import MAIN_MENU
from image_utils import ImageValidationError, image_processor
from interaction_log import InteractionLog
from logger_config import logger, log_error, error_handler
from query_planner import DIRECTION_RULES, direction_tag
from recommendation_pipeline import RecommendationPipeline, UserTurn
from response_models import (
    ResponseEnvelope, ActionButton, AdminSettingsResponse, StatusResponse, TaggedProduct, DirectionProducts
)
from settings_store import SettingsStore, mask_secret

INVALID_IMAGE_REPLY = "Sorry, I couldn't use that photo. Please upload a JPG, PNG, WEBP or GIF image under 10MB."

# --- Shared services ---
settings_store = SettingsStore(redis_client, defaults={REASONING_KEY_SETTING: GROQ_API_KEY})
interaction_log = InteractionLog(redis_client)

app = FastAPI(title="Art Assistant")


# --- Dependencies (overridable in tests) ---
def get_settings_store() -> SettingsStore:
    return settings_store


def get_interaction_log() -> InteractionLog:
    return interaction_log


def get_catalog() -> ShopifyCatalogClient:
    return ShopifyCatalogClient(get_http_client())


def get_pipeline(
    catalog=Depends(get_catalog),
    store: SettingsStore = Depends(get_settings_store),
    analytics: InteractionLog = Depends(get_interaction_log),
) -> RecommendationPipeline:
    return RecommendationPipeline(catalog, settings_store=store, interaction_log=analytics)


# --- Startup/Shutdown Events ---
@app.on_event("startup")
async def announce_configuration():
    from redis_client_manager import RedisClientManager
    logger.info(f"Art Assistant starting, Redis at {RedisClientManager.get_connection_info()}")
    if not GROQ_API_KEY:
        print("⚠️ GROQ_API_KEY not set in the environment; the admin settings key will be used if present")


@app.on_event("shutdown")
async def cleanup_connections():
    """Clean up Redis and HTTP connections on shutdown"""
    from redis_client_manager import RedisClientManager
    await RedisClientManager.close_connections()
    await close_http_client()
    print("🔒 Redis and HTTP connections closed on shutdown")


# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Custom exception handler for Pydantic's validation errors.
    Returns a detailed error response to help with debugging.
    """
    logger.warning(f"Validation error on {request.method} {request.url}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors(), "request_url": str(request.url)},
    )


# --- Chat ---

@app.post("/chat/turn", response_model=ResponseEnvelope)
async def chat_turn(
    text_message: Optional[str] = Form(None),
    flow_token: Optional[str] = Form(None),
    image_file: Optional[UploadFile] = File(None),
    pipeline: RecommendationPipeline = Depends(get_pipeline),
    ):
    """
    Single chat endpoint for the storefront widget.
    Accepts text, a flow button payload, and/or a room photo. Always answers with a
    ResponseEnvelope and HTTP 200 so the widget can render whatever comes back.
    """
    image_content = None
    image_filename = None
    if image_file is not None:
        try:
            raw_content = await image_file.read()
            # Browsers send an empty part when no file was picked
            if raw_content or image_file.filename:
                image_content = image_processor.validate_image_content(raw_content, image_file.filename)
                image_filename = image_file.filename
                logger.info(f"Image uploaded: {image_filename}, size: {len(raw_content) / (1024*1024):.2f}MB")
        except ImageValidationError as e:
            logger.warning(f"Rejected image upload {image_file.filename}: {e}")
            return ResponseEnvelope.message(INVALID_IMAGE_REPLY)

    turn = UserTurn(
        raw_text=text_message or "",
        image=image_content,
        flow_token=flow_token or None,
        image_filename=image_filename,
    )
    return await pipeline.handle_turn(turn)


@app.get("/chat/menu", response_model=ResponseEnvelope)
async def chat_menu():
    """Opening menu shown when the widget is first opened."""
    buttons = [ActionButton(label=label, payload=payload) for label, payload in MAIN_MENU]
    return ResponseEnvelope.actions("Hi! 👋 How would you like to find your art today?", buttons)


# --- Admin: reasoning credential ---

@app.get("/admin/settings", response_model=AdminSettingsResponse)
async def get_admin_settings(store: SettingsStore = Depends(get_settings_store)):
    api_key = await store.get(REASONING_KEY_SETTING)
    return AdminSettingsResponse(is_set=bool(api_key), masked_key=mask_secret(api_key))


@app.put("/admin/settings/reasoning-key", response_model=StatusResponse)
async def set_reasoning_key(api_key: str = Form(...), store: SettingsStore = Depends(get_settings_store)):
    api_key = api_key.strip()
    if not api_key:
        raise HTTPException(status_code=400, detail="api_key must not be empty")
    try:
        await store.set(REASONING_KEY_SETTING, api_key)
    except Exception as e:
        log_error(e, "set_reasoning_key")
        raise HTTPException(status_code=503, detail="Settings storage unavailable")
    return StatusResponse(status="success", message="Reasoning key saved")


@app.delete("/admin/settings/reasoning-key", response_model=StatusResponse)
async def delete_reasoning_key(store: SettingsStore = Depends(get_settings_store)):
    try:
        await store.delete(REASONING_KEY_SETTING)
    except Exception as e:
        log_error(e, "delete_reasoning_key")
        raise HTTPException(status_code=503, detail="Settings storage unavailable")
    return StatusResponse(status="success", message="Reasoning key removed")


# --- Admin: Vastu labels ---

def _require_direction(direction: str) -> str:
    for known in DIRECTION_RULES:
        if known.lower() == direction.lower():
            return known
    raise HTTPException(status_code=404, detail=f"Unknown direction '{direction}'")


@app.get("/admin/vastu", response_model=List[DirectionProducts])
@error_handler("Vastu Admin Listing")
async def list_vastu_products(
    catalog=Depends(get_catalog),
    analytics: InteractionLog = Depends(get_interaction_log),
    ):
    """Products carrying each Vastu-<Direction> label, with how often each direction was served."""
    tags = {direction: direction_tag(direction) for direction in DIRECTION_RULES}
    try:
        records = await catalog.products_with_tags(list(tags.values()))
    except CatalogServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    counts = await analytics.get_direction_counts()

    groups = []
    for direction, tag in tags.items():
        products = [
            TaggedProduct(id=str(record["id"]), title=record.get("title") or "", image_url=record.get("image") or "")
            for record in records if tag in (record.get("tags") or [])
        ]
        groups.append(DirectionProducts(
            direction=direction,
            tag=tag,
            description=DIRECTION_RULES[direction].summary,
            hits=counts.get(direction, 0),
            products=products,
        ))
    return groups


@app.post("/admin/vastu/{direction}/products", response_model=StatusResponse)
async def add_vastu_products(direction: str, product_ids: List[str] = Body(...), catalog=Depends(get_catalog)):
    direction = _require_direction(direction)
    tag = direction_tag(direction)
    try:
        for product_id in product_ids:
            await catalog.add_label(product_id, tag)
    except CatalogServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return StatusResponse(status="success", message=f"Tagged {len(product_ids)} products as {tag}")


@app.delete("/admin/vastu/{direction}/products/{product_id:path}", response_model=StatusResponse)
async def remove_vastu_product(direction: str, product_id: str, catalog=Depends(get_catalog)):
    direction = _require_direction(direction)
    tag = direction_tag(direction)
    try:
        await catalog.remove_label(product_id, tag)
    except CatalogServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return StatusResponse(status="success", message=f"Removed {tag} from {product_id}")


@app.get("/health")
async def health():
    from redis_client_manager import RedisClientManager
    return {"status": "ok", "redis": RedisClientManager.get_connection_info()}


@app.get("/")
def hello():
    return "hello"

# To run this app:
# 1. Make sure you have a .env file with your GROQ_API_KEY, Shopify and Redis details.
# 2. Run in your terminal: uvicorn main:app --reload
