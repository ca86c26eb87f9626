from flask import Flask, request, jsonify, make_response
from flask_cors import CORS
from vending_engine import ReportProcessor
import os
import logging

# Configure logging
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Enable CORS for all routes (the dashboard calls the API from the browser)
CORS(app)

# Initialize the report processor
processor = ReportProcessor()


@app.route("/api", methods=["GET"])
def api_info():
    """API information endpoint"""
    return jsonify({
        "status": "ok",
        "message": "Vending Operations Engine API",
        "version": "1.0",
        "endpoints": {
            **{path: "[POST]" for path in ReportProcessor.ROUTES},
            "health": "/health [GET]"
        }
    }), 200


@app.route("/health", methods=["GET"])
def health():
    """Health check for monitoring"""
    return jsonify({"status": "healthy"}), 200


def _run(path):
    """Parse the JSON body and run the engine operation registered for path."""
    try:
        input_data = request.get_json(force=True, silent=True)

        if not input_data:
            return jsonify({
                "error": "No input data provided",
                "status": "failed"
            }), 400

        logger.info(f"Processing {path}")

        result = processor.handle(path, input_data)

        logger.info(f"Processed {path} successfully")

        return jsonify(result), 200

    except (ValueError, KeyError, TypeError) as e:
        # Validation errors from engine
        logger.error(f"Validation error on {path}: {str(e)}")
        return jsonify({
            "error": str(e),
            "status": "validation_failed"
        }), 400

    except Exception as e:
        # Unexpected errors
        logger.error(f"Processing error on {path}: {str(e)}", exc_info=True)
        return jsonify({
            "error": "An unexpected error occurred during processing",
            "status": "failed"
        }), 500


@app.route("/net_summary", methods=["POST"])
def net_summary():
    return _run("/net_summary")


@app.route("/commissions", methods=["POST"])
def commissions():
    return _run("/commissions")


@app.route("/insurance_allocation", methods=["POST"])
def insurance_allocation():
    return _run("/insurance_allocation")


@app.route("/reports/<name>", methods=["POST"])
def report(name):
    """Report endpoints; ?format=csv returns the location commission CSV."""
    path = f"/reports/{name}"
    if path not in ReportProcessor.ROUTES:
        return jsonify({"error": "Not found", "path": path}), 404

    if name == "location_commission" and request.args.get("format") == "csv":
        input_data = request.get_json(force=True, silent=True) or {}
        try:
            export = processor.location_commissions_csv(input_data)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Validation error on {path}: {str(e)}")
            return jsonify({"error": str(e), "status": "validation_failed"}), 400
        response = make_response(export["csv"])
        response.headers["Content-Type"] = "text/csv; charset=utf-8"
        response.headers["Content-Disposition"] = f"attachment; filename={export['filename']}"
        return response

    return _run(path)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=False)
