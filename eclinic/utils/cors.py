"""
CORS for the browser clients (student and nurse portals).

Session cookies cross origins only with explicit origins, so the allowed
list comes from CORS_ORIGINS instead of "*".
"""
from flask_cors import CORS

ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
ALLOWED_HEADERS = ["Content-Type", "Authorization", "X-Requested-With"]


def init_cors(app):
    origins = app.config.get('CORS_ORIGINS') or []
    if not origins:
        app.logger.warning("CORS_ORIGINS is empty; browser clients on other origins will be refused")

    CORS(app,
         resources={r"/api/*": {"origins": origins}},
         methods=ALLOWED_METHODS,
         allow_headers=ALLOWED_HEADERS,
         expose_headers=["Retry-After"],
         supports_credentials=True,
         max_age=86400)

    app.logger.info("CORS enabled for %s", ", ".join(origins) or "no origins")
