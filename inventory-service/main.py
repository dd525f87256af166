import os
import time
import uuid
from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from loguru import logger
from dotenv import load_dotenv
from typing import Optional
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from exceptions import InventoryError, ProductNotFoundError, StorageError
from repository import JsonProductRepository, ProductRepository
from schemas import ApiInfo, ErrorEnvelope, ProductEnvelope, ProductListEnvelope
from validation import parse_product_id, read_payload, validate_create, validate_update

# Chargement des variables d'environnement
load_dotenv()

SERVICE_NAME = "inventory-service"
API_VERSION = "1.0.0"

# Fichier JSON des produits (relatif au répertoire de travail)
PRODUCTS_FILE = os.getenv("PRODUCTS_FILE", "products.json")
LOG_FILE = os.getenv("LOG_FILE", "logs.json")

PRODUCT_NOT_FOUND = "Producto no encontrado"
ROUTE_NOT_FOUND = "Ruta no encontrada"
INTERNAL_ERROR = "Error interno del servidor"
CREATE_FAILED = "Error al crear el producto"
UPDATE_FAILED = "Error al actualizar el producto"
DELETE_FAILED = "Error al eliminar el producto"

# Config logging JSON (niveaux INFO, WARNING, ERROR)
logger.remove()
logger.add(
    sink=LOG_FILE,
    format="{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message} | {extra}",
    level="INFO",
    serialize=True,
    rotation="1 day",
)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["service", "method", "endpoint"]
)
ERROR_COUNT = Counter(
    "http_errors_total",
    "Total HTTP errors",
    ["service", "endpoint", "error_type"]
)

app = FastAPI(title="Inventory Service")

# Une seule instance: le verrou du dépôt doit être partagé entre les requêtes
repository = JsonProductRepository(PRODUCTS_FILE)


def get_repository() -> ProductRepository:
    return repository


def error_response(status_code: int, message: str, error: Optional[str] = None) -> JSONResponse:
    envelope = ErrorEnvelope(message=message, error=error)
    return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))


# Middleware pour logger les requests avec correlation ID
@app.middleware("http")
async def log_requests(request: Request, call_next):
    # Generate or propagate correlation ID (trace-id)
    trace_id = request.headers.get("X-Trace-ID", str(uuid.uuid4()))
    start_time = time.time()

    # Bind trace_id to logger context
    with logger.contextualize(trace_id=trace_id, service=SERVICE_NAME):
        # Le chemin peut contenir des accolades: pas de kwargs de formatage
        logger.bind(method=request.method, url=str(request.url)).info(
            f"Request: {request.method} {request.url.path}"
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            # Une erreur inattendue ne doit jamais affecter les requêtes suivantes
            logger.exception(f"Unhandled error on {request.method} {request.url.path}")
            ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=request.url.path, error_type="internal").inc()
            response = error_response(500, INTERNAL_ERROR, error=str(exc))

        # Calculate latency
        latency = time.time() - start_time

        # Record metrics
        REQUEST_COUNT.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=request.url.path
        ).observe(latency)

        logger.bind(status=response.status_code, latency=latency).info(
            f"Response status: {response.status_code}"
        )

        # Add trace_id to response headers for tracing
        response.headers["X-Trace-ID"] = trace_id
        return response


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    if exc.status_code >= 500:
        logger.bind(error_type=exc.error_type).error(f"{exc.message}: {exc.error}")
    else:
        logger.bind(error_type=exc.error_type).warning(exc.message)
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=request.url.path, error_type=exc.error_type).inc()
    return error_response(exc.status_code, exc.message, exc.error)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Route ou méthode inconnue: 404 uniforme
    if exc.status_code in (404, 405):
        logger.warning(f"Route not found: {request.method} {request.url.path}")
        ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=request.url.path, error_type="route_not_found").inc()
        return error_response(404, ROUTE_NOT_FOUND)
    return error_response(exc.status_code, str(exc.detail))


@app.get("/metrics")
async def metrics():
    """Endpoint /metrics compatible Prometheus"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "service": SERVICE_NAME}


@app.get("/api", response_model=ApiInfo)
async def api_info():
    """Description statique des endpoints"""
    return ApiInfo(
        message="Sistema de Gestión de Inventarios - API",
        version=API_VERSION,
        endpoints={
            "GET /products": "Obtener todos los productos",
            "GET /products/:id": "Obtener un producto específico",
            "POST /products": "Crear un nuevo producto",
            "PUT /products/:id": "Actualizar un producto",
            "DELETE /products/:id": "Eliminar un producto",
        },
    )


@app.get("/products", response_model=ProductListEnvelope)
async def get_products(repo: ProductRepository = Depends(get_repository)):
    logger.info("Fetching all products")
    products = await run_in_threadpool(repo.list_all)
    return ProductListEnvelope(data=[p.model_dump() for p in products], count=len(products))


@app.get("/products/{product_id}", response_model=ProductEnvelope, response_model_exclude_none=True)
async def get_product(product_id: str, repo: ProductRepository = Depends(get_repository)):
    key = parse_product_id(product_id)
    logger.info(f"Fetching product {key}")
    product = await run_in_threadpool(repo.get_by_id, key)
    if product is None:
        raise ProductNotFoundError(PRODUCT_NOT_FOUND)
    return ProductEnvelope(data=product.model_dump())


@app.post("/products", status_code=201, response_model=ProductEnvelope)
async def create_product(request: Request, repo: ProductRepository = Depends(get_repository)):
    draft = validate_create(await read_payload(request))
    logger.info(f"Creating product: {draft.name}")
    try:
        product = await run_in_threadpool(repo.create, draft.model_dump())
    except StorageError as exc:
        raise StorageError(CREATE_FAILED, error=exc.error) from exc
    return ProductEnvelope(message="Producto creado exitosamente", data=product.model_dump())


@app.put("/products/{product_id}", response_model=ProductEnvelope)
async def update_product(product_id: str, request: Request, repo: ProductRepository = Depends(get_repository)):
    key = parse_product_id(product_id)
    if await run_in_threadpool(repo.get_by_id, key) is None:
        raise ProductNotFoundError(PRODUCT_NOT_FOUND)

    patch = validate_update(await read_payload(request))
    logger.bind(fields=sorted(patch)).info(f"Updating product {key}")
    try:
        product = await run_in_threadpool(repo.update, key, patch)
    except StorageError as exc:
        raise StorageError(UPDATE_FAILED, error=exc.error) from exc
    if product is None:
        # Supprimé entre la vérification et l'écriture
        raise ProductNotFoundError(PRODUCT_NOT_FOUND)
    return ProductEnvelope(message="Producto actualizado exitosamente", data=product.model_dump())


@app.delete("/products/{product_id}", response_model=ProductEnvelope)
async def delete_product(product_id: str, repo: ProductRepository = Depends(get_repository)):
    key = parse_product_id(product_id)
    existing = await run_in_threadpool(repo.get_by_id, key)
    if existing is None:
        raise ProductNotFoundError(PRODUCT_NOT_FOUND)

    logger.info(f"Deleting product {key}")
    try:
        deleted = await run_in_threadpool(repo.delete, key)
    except StorageError as exc:
        raise StorageError(DELETE_FAILED, error=exc.error) from exc
    if not deleted:
        raise ProductNotFoundError(PRODUCT_NOT_FOUND)
    return ProductEnvelope(message="Producto eliminado exitosamente", data=existing.model_dump())


if __name__ == "__main__":
    port = int(os.getenv("PORT", 3000))
    logger.info(f"Starting Inventory Service on port {port}")
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=port)
