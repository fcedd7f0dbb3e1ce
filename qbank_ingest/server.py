"""
HTTP Microservice
=================
Flask-based HTTP API for the ingest engine, so the question-bank front end
can submit pasted text without shelling out.

Endpoints:
    POST   /api/parse         → Parse pasted text into question records
    GET    /api/health        → Health check
    GET    /api/info          → Engine version info
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from flask import Flask, current_app, jsonify, request
from flask_cors import CORS

from . import __version__
from .engine import IngestConfig, IngestEngine

logger = logging.getLogger(__name__)


def create_app(config: Optional[dict] = None) -> Flask:
    """
    Create and configure the Flask app.

    Recognised config keys:
        INGEST_CONFIG: IngestConfig used for every request
            (defaults to IngestConfig.from_env()).
        INGEST_EXTRACTOR: StructuredExtractor for the AI tier
            (defaults to a GeminiExtractor when a key is available).
    """
    app = Flask(__name__)
    CORS(app)

    if config:
        app.config.update(config)
    app.config.setdefault("INGEST_EXTRACTOR", None)
    if app.config.get("INGEST_CONFIG") is None:
        app.config["INGEST_CONFIG"] = IngestConfig.from_env()

    # ─── Health Check ─────────────────────────────────────────────────────

    @app.route("/api/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({
            "status": "healthy",
            "service": "qbank-ingest",
            "version": __version__,
        })

    @app.route("/api/info", methods=["GET"])
    def info():
        """Engine version and capability info."""
        ingest_config: IngestConfig = current_app.config["INGEST_CONFIG"]
        return jsonify({
            "version": __version__,
            "strategy_order": list(ingest_config.strategy_order),
            "ai_enabled": ingest_config.ai_enabled,
            "ai_model": ingest_config.ai_model,
            "watermarks": list(ingest_config.watermarks),
            "capabilities": [
                "normalization",
                "segmentation",
                "heuristic_parsing",
                "ai_fallback",
                "answer_reconciliation",
            ],
            "supported_languages": ["en", "ar"],
        })

    # ─── Parse Endpoint ───────────────────────────────────────────────────

    @app.route("/api/parse", methods=["POST"])
    def parse_text():
        """
        Parse pasted exam text.

        JSON body:
            text: Raw pasted text (required).
            source: Optional source label stored on every record.
            subject: Optional subject overriding the configured default.

        Returns {"questions": [...], "report": {...}} with camelCase
        question fields.
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Provide a JSON body with text"}), 400

        text = data.get("text")
        if not isinstance(text, str):
            return jsonify({"error": "'text' must be a string"}), 400

        ingest_config: IngestConfig = current_app.config["INGEST_CONFIG"]
        overrides = {}
        if isinstance(data.get("source"), str):
            overrides["source"] = data["source"]
        if isinstance(data.get("subject"), str) and data["subject"].strip():
            overrides["default_subject"] = data["subject"].strip()
        if overrides:
            ingest_config = dataclasses.replace(ingest_config, **overrides)

        try:
            engine = IngestEngine(
                ingest_config,
                extractor=current_app.config["INGEST_EXTRACTOR"],
            )
            result = engine.run(text)
        except Exception as e:
            logger.exception("Parse request failed")
            return jsonify({"error": str(e)}), 500

        return jsonify({
            "questions": [
                q.model_dump(mode="json", by_alias=True)
                for q in result.questions
            ],
            "report": result.report.model_dump(mode="json"),
        })

    return app


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
    config: Optional[dict] = None,
):
    """Start the microservice server."""
    app = create_app(config)
    logger.info(f"Starting server on {host}:{port}")
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
