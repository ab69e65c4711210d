"""Main Quart application for KnowHub."""
from dataclasses import dataclass
from typing import Optional

import pydantic
from quart import Blueprint, Quart, current_app, jsonify, request
import structlog

from knowhub import config, db
from knowhub.errors import (
    ConfigurationError,
    KnowHubError,
    NotFoundError,
    ProviderError,
    StorageError,
    ValidationError,
)
from knowhub.documents import DocumentService
from knowhub.llm_client import OllamaClient
from knowhub.log import configure_logging
from knowhub.memory import HistoryRecorder
from knowhub.rag.answerer import RAGOrchestrator
from knowhub.rag.ingest import IngestionCoordinator
from knowhub.rag.retriever import Retriever
from knowhub.rag.store import VectorStore
from knowhub.schemas import (
    DocumentResponse,
    QueryHistoryResponse,
    QueryRequest,
    QueryResponse,
)

logger = structlog.get_logger()

API_PREFIX = "/api/v1"

# Exception type -> HTTP status; handlers are matched along the MRO
ERROR_STATUS = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ProviderError, 502),
    (StorageError, 500),
    (ConfigurationError, 500),
    (KnowHubError, 500),
]


@dataclass
class Services:
    """Wired application components."""

    documents: DocumentService
    orchestrator: RAGOrchestrator
    history: HistoryRecorder
    ingestion: IngestionCoordinator
    llm: Optional[OllamaClient] = None


async def build_services(llm: OllamaClient = None) -> Services:
    """Create the database, load the vector store and wire every component."""
    config.ensure_directories()
    db.init_database()

    llm = llm or OllamaClient()
    dimension = config.EMBEDDING_DIMENSION or await llm.detect_embedding_dimension()

    vector_store = VectorStore(dimension)
    await vector_store.load()

    history = HistoryRecorder()
    ingestion = IngestionCoordinator(vector_store, llm)
    orchestrator = RAGOrchestrator(Retriever(vector_store, llm), llm, history)

    return Services(
        documents=DocumentService(vector_store, ingestion),
        orchestrator=orchestrator,
        history=history,
        ingestion=ingestion,
        llm=llm,
    )


def _services() -> Services:
    return current_app.extensions["knowhub"]


def _ok(data=None, status: int = 200):
    return jsonify({"success": True, "data": data, "error": None}), status


def _error(message: str, status: int):
    return jsonify({"success": False, "data": None, "error": message}), status


api = Blueprint("api", __name__)


@api.route(f"{API_PREFIX}/documents/upload", methods=["POST"])
async def upload_document():
    """Upload a PDF, DOCX or TXT file (multipart field 'file')."""
    files = await request.files
    upload = files.get("file")
    if upload is None:
        return _error("Missing 'file' in request", 400)

    document = await _services().documents.upload(
        filename=upload.filename,
        content_type=upload.mimetype,
        data=upload.read(),
    )
    return _ok(DocumentResponse.from_document(document).model_dump(), 201)


@api.route(f"{API_PREFIX}/documents", methods=["GET"])
async def list_documents():
    """List uploaded documents, newest first."""
    documents = _services().documents.list_documents()
    return _ok([DocumentResponse.from_document(d).model_dump() for d in documents])


@api.route(f"{API_PREFIX}/documents/<int:document_id>", methods=["DELETE"])
async def delete_document(document_id: int):
    """Delete a document and its chunks."""
    await _services().documents.delete_document(document_id)
    return "", 204


@api.route(f"{API_PREFIX}/query", methods=["POST"])
async def ask_question():
    """Answer a question about the uploaded documents.

    Expects JSON body:
    {
        "question": "user question text"
    }
    """
    data = await request.get_json(silent=True)
    try:
        query = QueryRequest.model_validate(data or {})
    except pydantic.ValidationError as e:
        logger.info("invalid_query_request", errors=e.error_count())
        return _error("Question must be a non-empty string of at most "
                      f"{config.MAX_QUESTION_LENGTH} characters", 400)

    answer = await _services().orchestrator.answer_question(query.question)
    return _ok(QueryResponse.from_answer(answer).model_dump())


@api.route(f"{API_PREFIX}/query/history", methods=["GET"])
async def query_history():
    """Most recent questions and answers, newest first."""
    records = _services().history.recent()
    return _ok([QueryHistoryResponse.from_record(r).model_dump() for r in records])


@api.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


@api.route("/health/ready")
async def health_ready():
    """Readiness probe - check the Ollama service and required models."""
    services = _services()
    checks = {
        "status": "healthy",
        "ollama": False,
        "models": False,
        "vector_store": services.documents.vector_store.get_stats(),
        "ingestion_in_flight": services.ingestion.in_flight,
    }

    if services.llm is None:
        return jsonify(checks), 200

    try:
        models = await services.llm.list_models()
        checks["ollama"] = True

        missing = [m for m in (services.llm.chat_model, services.llm.embedding_model) if m not in models]
        if missing:
            checks["status"] = "unhealthy"
            checks["error"] = f"Missing models: {', '.join(missing)}"
        else:
            checks["models"] = True

    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        checks["status"] = "unhealthy"
        checks["error"] = str(e)

    status_code = 200 if checks["status"] == "healthy" else 503
    return jsonify(checks), status_code


def _register_error_handlers(app: Quart) -> None:
    def make_handler(status: int):
        async def handle(error: KnowHubError):
            log = logger.warning if status < 500 else logger.error
            log("request_failed", error=str(error), error_type=type(error).__name__, status=status)
            return _error(str(error), status)

        return handle

    for error_type, status in ERROR_STATUS:
        app.register_error_handler(error_type, make_handler(status))

    @app.errorhandler(404)
    async def not_found(error):
        return _error("Not found", 404)

    @app.errorhandler(413)
    async def too_large(error):
        return _error("File size exceeds maximum allowed size", 413)

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return _error("Internal server error", 500)


def create_app(services: Services = None) -> Quart:
    """Create the Quart application.

    Args:
        services: Pre-wired components; built at startup when omitted
    """
    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES

    if services is not None:
        app.extensions["knowhub"] = services

    @app.before_serving
    async def startup():
        configure_logging()
        if "knowhub" not in app.extensions:
            app.extensions["knowhub"] = await build_services()
        logger.info("knowhub_started")

    @app.after_serving
    async def shutdown():
        ingestion = app.extensions["knowhub"].ingestion
        if ingestion.in_flight:
            logger.info("draining_ingestion", in_flight=ingestion.in_flight)
        await ingestion.drain()

    app.register_blueprint(api)
    _register_error_handlers(app)
    return app


if __name__ == "__main__":
    # For development - use hypercorn in production
    create_app().run(host="0.0.0.0", port=5000, debug=True)
