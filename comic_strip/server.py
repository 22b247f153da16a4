"""
Comic Generator - Flask Web Application

JSON API over ComicService:
- POST /api/generate-comic        start a comic (returns immediately)
- GET  /api/comic-status/<id>     poll a request
- GET  /api/recent-comics         newest requests first
- GET  /api/health                liveness
"""

import logging

from flask import Flask, jsonify, request

from comic_strip.models import BriefValidationError, ComicBrief
from comic_strip.service import ComicService

logger = logging.getLogger(__name__)


def create_app(service: ComicService) -> Flask:
    app = Flask(__name__, static_folder=None)
    app.config["COMIC_SERVICE"] = service

    @app.route("/api/generate-comic", methods=["POST"])
    def generate_comic():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            payload = {}

        try:
            brief = ComicBrief.from_payload(payload)
        except BriefValidationError as e:
            return jsonify({"error": str(e)}), 400

        if not service.running:
            return jsonify({"error": "Comic generator is not initialized"}), 500

        try:
            tracked = service.submit(brief)
        except Exception as e:
            logger.error(f"Comic generation request error: {e}")
            return jsonify({"error": "Failed to start comic generation"}), 500

        return jsonify({
            "requestId": tracked.request_id,
            "status": "pending",
            "message": "Comic generation started",
        })

    @app.route("/api/comic-status/<request_id>")
    def comic_status(request_id):
        tracked = service.get(request_id)
        if tracked is None:
            return jsonify({"error": "Request not found"}), 404
        return jsonify(tracked.to_status_dict())

    @app.route("/api/recent-comics")
    def recent_comics():
        return jsonify([r.to_summary_dict() for r in service.list_recent()])

    @app.route("/api/health")
    def health():
        return jsonify({
            "status": "ok" if service.running else "stopped",
            "trackedRequests": len(service.ledger),
        })

    return app
