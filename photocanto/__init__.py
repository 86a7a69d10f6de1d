from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from photocanto.config import config
import logging
from logging.handlers import RotatingFileHandler
import os


def create_app(test_config=None):
    app = Flask(__name__)

    # Apply Config
    app.config['MAX_CONTENT_LENGTH'] = config.MAX_CONTENT_LENGTH
    app.config['JSON_AS_ASCII'] = config.JSON_AS_ASCII
    app.config['LOG_DIR'] = config.LOG_DIR
    if test_config:
        app.config.update(test_config)
    app.json.ensure_ascii = app.config['JSON_AS_ASCII']

    # Configure Logging
    # app.logger is the "photocanto" logger, so service module loggers propagate into it
    if not any(isinstance(h, RotatingFileHandler) for h in app.logger.handlers):
        os.makedirs(app.config['LOG_DIR'], exist_ok=True)
        file_handler = RotatingFileHandler(os.path.join(app.config['LOG_DIR'], 'app.log'), maxBytes=10240, backupCount=10)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)
    app.logger.info('photocanto startup')

    origins = [o.strip() for o in str(config.ALLOWED_ORIGINS).split(',') if o.strip()] or '*'
    CORS(app, resources={r"/*": {"origins": origins}})

    # Register Blueprints
    from photocanto.routes.main import main_bp
    from photocanto.routes.api import api_bp
    from photocanto.routes.user import user_bp
    from photocanto.routes.share import share_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(share_bp)

    # Error Handlers
    @app.errorhandler(413)
    def request_entity_too_large(e):
        app.logger.warning('Request entity too large')
        limit_mb = app.config['MAX_CONTENT_LENGTH'] // (1024 * 1024)
        return jsonify({"success": False, "error": f"File size exceeds the {limit_mb}MB limit"}), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def internal_error(e):
        if isinstance(e, HTTPException):
            return jsonify({"success": False, "error": e.description}), e.code
        app.logger.exception(f'Server Error: {e}')
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return app
