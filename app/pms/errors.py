from __future__ import annotations

from flask import Flask, g, jsonify

from app.pms.storage import StorageError


class ServiceError(ValueError):
    """Business-rule failure raised by service functions; rendered as JSON by the app."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFound(ServiceError):
    def __init__(self, message: str = "Not found."):
        super().__init__(message, 404)


class Conflict(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, 409)


def register_error_handlers(app: Flask) -> None:
    from app.pms.modules.lease_documents.docx_merger import DocumentMergeError
    from app.pms.modules.lease_documents.pdf_converter import PdfConversionError
    from app.pms.modules.lease_templates.docx_processor import TemplateError

    @app.errorhandler(ServiceError)
    def _service_error(e: ServiceError):  # type: ignore[no-redef]
        return jsonify({"error": e.message}), e.status_code

    @app.errorhandler(TemplateError)
    def _template_error(e: TemplateError):  # type: ignore[no-redef]
        app.logger.warning("Template error (request_id=%s): %s", getattr(g, "request_id", None), e)
        return jsonify({"error": str(e)}), 422

    @app.errorhandler(DocumentMergeError)
    def _merge_error(e: DocumentMergeError):  # type: ignore[no-redef]
        app.logger.error("Document merge failed (request_id=%s): %s", getattr(g, "request_id", None), e)
        return jsonify({"error": str(e)}), 422

    @app.errorhandler(PdfConversionError)
    def _pdf_error(e: PdfConversionError):  # type: ignore[no-redef]
        app.logger.error("PDF conversion failed (request_id=%s): %s", getattr(g, "request_id", None), e)
        return jsonify({"error": str(e)}), 502

    @app.errorhandler(StorageError)
    def _storage_error(e: StorageError):  # type: ignore[no-redef]
        app.logger.error("Storage error (request_id=%s): %s", getattr(g, "request_id", None), e)
        return jsonify({"error": str(e)}), 502

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        return jsonify({"error": getattr(e, "description", None) or "Bad request."}), 400

    @app.errorhandler(401)
    def _err_401(e):  # type: ignore[no-redef]
        return jsonify({"error": "Authentication required."}), 401

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return jsonify({"error": "Forbidden.", "missing_permission": missing}), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return jsonify({"error": "Not found."}), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return jsonify({"error": "Method not allowed."}), 405

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return jsonify({"error": "File too large. Maximum size is 25MB."}), 413

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"error": "Internal server error.", "request_id": rid}), 500
