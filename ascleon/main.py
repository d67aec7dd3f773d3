"""Main Quart application for the Ascleon telehealth assistant."""
import base64
import binascii
import logging
from typing import Optional

import structlog
from pydantic import BaseModel, Field, ValidationError
from quart import Blueprint, Quart, current_app, jsonify, request

from ascleon import config
from ascleon.errors import IngestionError, QueryError, StoreError, TriageError
from ascleon.rag.models import QueryType
from ascleon.services import Services, build_services

# Configure structured logging
logging.basicConfig(format="%(message)s", level=config.LOG_LEVEL)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()

QUERY_ERROR_ANSWER = "Sorry, I encountered an error. Please try again later."

api = Blueprint("api", __name__)


class UploadRequest(BaseModel):
    filename: str = Field(..., min_length=1)
    file_data: str = Field(..., alias="fileData", min_length=1)
    file_size: Optional[int] = Field(default=None, alias="fileSize", ge=0)


class QueryRequest(BaseModel):
    question: str = Field(..., min_length=1)
    language: str = "en"
    user_id: Optional[str] = Field(default=None, alias="userId")


class SkinRequest(BaseModel):
    image: str = Field(..., min_length=1)
    language: str = "en"
    user_id: Optional[str] = Field(default=None, alias="userId")


def _services() -> Services:
    return current_app.extensions["ascleon"]


def _decode_file_data(file_data: str) -> bytes:
    """Decode a data URL or bare base64 payload."""
    encoded = file_data.split(",", 1)[1] if "," in file_data else file_data
    return base64.b64decode(encoded, validate=True)


async def _json_body() -> dict:
    data = await request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@api.route("/api/documents", methods=["POST"])
async def upload_document():
    """Ingest an uploaded PDF.

    Expects JSON body:
    {
        "filename": "guide.pdf",
        "fileData": "data:application/pdf;base64,...",
        "fileSize": 12345
    }

    Returns JSON (201):
    {
        "success": true,
        "documentId": "uuid",
        "chunksProcessed": 3,
        "chunksExpected": 3,
        "status": "completed"
    }
    """
    try:
        body = UploadRequest.model_validate(await _json_body())
    except ValidationError:
        return jsonify({"error": "Missing required fields"}), 400

    if not body.filename.lower().endswith(".pdf"):
        return jsonify({"error": "Please upload a PDF file"}), 400

    try:
        data = _decode_file_data(body.file_data)
    except (binascii.Error, ValueError):
        return jsonify({"error": "Invalid file data format"}), 400

    if len(data) > config.MAX_UPLOAD_BYTES:
        return jsonify({"error": "File too large"}), 413

    try:
        result = await _services().ingest.ingest(
            data,
            display_name=body.filename,
            size=body.file_size if body.file_size is not None else len(data),
        )
    except IngestionError as e:
        logger.error("document_upload_failed", error=str(e), document_id=e.document_id)
        return jsonify({"error": str(e), "documentId": e.document_id}), 502

    return jsonify({
        "success": True,
        "documentId": result.document_id,
        "chunksProcessed": result.chunk_count,
        "chunksExpected": result.chunks_expected,
        "status": result.status,
    }), 201


@api.route("/api/documents", methods=["GET"])
async def list_documents():
    """List uploaded documents, newest first."""
    try:
        documents = await _services().store.list_documents()
        return jsonify({"documents": [d.to_dict() for d in documents]})
    except StoreError as e:
        logger.error("documents_list_error", error=str(e))
        return jsonify({"error": "Failed to list documents"}), 500


@api.route("/api/documents/<document_id>", methods=["DELETE"])
async def delete_document(document_id: str):
    """Delete a document and all its chunks.

    Returns:
        204 No Content if successful
        404 Not Found if the document doesn't exist
    """
    try:
        deleted = await _services().store.delete_document(document_id)
    except StoreError as e:
        logger.error("document_delete_error", error=str(e), document_id=document_id)
        return jsonify({"error": "Failed to delete document"}), 500

    if not deleted:
        return jsonify({"error": "Document not found"}), 404
    return "", 204


async def _answer(query_type: QueryType):
    try:
        body = QueryRequest.model_validate(await _json_body())
    except ValidationError:
        return jsonify({"error": "Missing required fields"}), 400

    question = body.question.strip()
    if not question:
        return jsonify({"error": "Question cannot be empty"}), 400

    if len(question) > config.MAX_QUESTION_CHARS:
        return jsonify({
            "error": f"Question too long (max {config.MAX_QUESTION_CHARS} characters)"
        }), 400

    try:
        result = await _services().query.answer(
            question,
            language=body.language,
            user_id=body.user_id,
            query_type=query_type,
        )
    except QueryError as e:
        # Chat clients render this as a normal assistant message
        logger.error("query_failed", error=str(e), query_type=query_type.value)
        return jsonify({"answer": QUERY_ERROR_ANSWER, "error": True})

    return jsonify({"answer": result.answer})


@api.route("/api/query", methods=["POST"])
async def medical_query():
    """Answer a medical question.

    Expects JSON body:
    {
        "question": "What are the symptoms of dengue?",
        "language": "en",   // en, hi or mr
        "userId": "uuid"    // optional, enables query logging
    }

    Returns JSON:
    {
        "answer": "..."
    }
    """
    return await _answer(QueryType.MEDICAL)


@api.route("/api/emergency", methods=["POST"])
async def emergency_query():
    """Answer an emergency first-aid question (same body as /api/query)."""
    return await _answer(QueryType.EMERGENCY)


@api.route("/api/skin", methods=["POST"])
async def skin_analysis():
    """Triage a skin photo.

    Expects JSON body:
    {
        "image": "data:image/jpeg;base64,...",
        "language": "en",
        "userId": "uuid"
    }

    Returns JSON:
    {
        "condition": "...",
        "severity": "Mild" | "Moderate" | "Urgent",
        "careSteps": [...],
        "disclaimer": "..."
    }
    """
    try:
        body = SkinRequest.model_validate(await _json_body())
    except ValidationError:
        return jsonify({"error": "Image is required"}), 400

    try:
        result = await _services().triage.analyze(
            body.image, language=body.language, user_id=body.user_id
        )
    except TriageError as e:
        logger.error("skin_analysis_failed", error=str(e))
        return jsonify({"error": str(e)}), 502

    return jsonify(result.to_response())


@api.route("/api/queries", methods=["GET"])
async def list_queries():
    """Most recent query logs (admin view)."""
    limit = request.args.get("limit", default=50, type=int)
    limit = max(1, min(limit, 500))
    try:
        logs = await _services().store.list_query_logs(limit=limit)
        return jsonify({"queries": [log.to_dict() for log in logs]})
    except StoreError as e:
        logger.error("queries_list_error", error=str(e))
        return jsonify({"error": "Failed to list queries"}), 500


@api.route("/api/stats", methods=["GET"])
async def stats():
    """Document, chunk and query counts."""
    try:
        return jsonify(await _services().store.stats())
    except StoreError as e:
        logger.error("stats_error", error=str(e))
        return jsonify({"error": "Failed to load stats"}), 500


@api.route("/health/ready")
async def health_ready():
    """Readiness probe - check if app can serve requests.

    Checks:
    - Storage backend is reachable
    - Gemini API key is configured
    """
    services = _services()
    checks = {
        "status": "healthy",
        "store": await services.store.ping(),
        "gemini_key": bool(services.query.client.api_key),
    }

    if not checks["store"] or not checks["gemini_key"]:
        checks["status"] = "unhealthy"

    status_code = 200 if checks["status"] == "healthy" else 503
    return jsonify(checks), status_code


@api.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


def create_app(services: Optional[Services] = None) -> Quart:
    """Build the Quart application.

    Args:
        services: Prebuilt service bundle (built from config when omitted)
    """
    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES * 2  # base64 overhead
    app.extensions["ascleon"] = services or build_services()
    app.register_blueprint(api)

    @app.after_serving
    async def shutdown():
        await app.extensions["ascleon"].aclose()

    @app.errorhandler(404)
    async def not_found(error):
        """Handle 404 errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        """Handle 500 errors."""
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


if __name__ == "__main__":
    # For development - run `hypercorn "ascleon.main:create_app()"` in production
    create_app().run(host="0.0.0.0", port=5000, debug=True)
