"""
Flask app for GRBL laser control

JSON API for sending jobs to a GRBL laser cutter.
Run with: flask --app grbl_laser.app run --port 8080
"""

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
import logging
from typing import Optional

from .driver import exit_on_sigterm
from .job import Job
from .protocol import GrblError
from .services import LaserDeviceManager, LaserService

logger = logging.getLogger(__name__)


def create_app(service: Optional[LaserService] = None) -> Flask:
    app = Flask(__name__)
    service = service or LaserService(LaserDeviceManager())
    app.config["LASER_SERVICE"] = service

    @app.errorhandler(Exception)
    def handle_unexpected_error(err):
        """Ensure API endpoints always return JSON, even for unhandled failures."""
        if isinstance(err, HTTPException):
            if request.path.startswith("/api/"):
                return jsonify({"success": False, "error": err.description}), err.code or 500
            return err
        if isinstance(err, (GrblError, ValueError)):
            return jsonify({"success": False, "error": str(err)}), 400
        logger.exception("Unhandled API error on %s: %s", request.path, err)
        return jsonify({"success": False, "error": str(err) or "Internal Server Error"}), 500

    def _job_from_request() -> Job:
        data = request.get_json(silent=True)
        if data is None:
            raise ValueError("Request body must be a JSON job")
        return Job.from_dict(data)

    @app.get("/api/status")
    def status():
        return jsonify({"success": True, **service.status()})

    @app.get("/api/config")
    def get_config():
        return jsonify({"success": True, "config": service.device.config.to_dict()})

    @app.post("/api/config")
    def set_config():
        if service.is_busy():
            return jsonify({"success": False, "error": "Job running"}), 409
        data = request.get_json(silent=True) or {}
        config = service.device.update_config(data)
        return jsonify({"success": True, "config": config.to_dict()})

    @app.post("/api/preview")
    def preview():
        job = _job_from_request()
        return jsonify({"success": True, **service.preview(job)})

    @app.post("/api/job")
    def start_job():
        job = _job_from_request()
        started, error = service.start_job(job)
        if not started:
            return jsonify({"success": False, "error": error}), 409
        return jsonify({"success": True, "job": job.name}), 202

    @app.post("/api/cancel")
    def cancel():
        return jsonify({"success": service.cancel()})

    return app


def main():
    logging.basicConfig(level=logging.INFO)
    # jobs run on worker threads, so SIGTERM must reach atexit from here
    exit_on_sigterm()
    create_app().run(host="0.0.0.0", port=8080)


if __name__ == "__main__":
    main()
