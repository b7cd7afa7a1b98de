"""
Development server.

    python run.py

Lifecycle sweeps are not started here; run the Celery worker with --beat,
or `flask --app run run-sweeps` for a single in-process tick.
"""
import os

from eclinic import create_app

app = create_app()

if __name__ == '__main__':
    host = os.getenv('FLASK_HOST', '0.0.0.0')
    port = int(os.getenv('FLASK_PORT', 5000))
    env = os.getenv('FLASK_ENV', 'development')

    app.logger.info("Starting eClinic backend on %s:%s (%s)", host, port, env)
    app.run(host=host, port=port, debug=env == 'development', threaded=True)
