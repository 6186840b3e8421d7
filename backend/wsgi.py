"""WSGI configuration for production deployment."""
import atexit
import os

from dotenv import load_dotenv

load_dotenv()

from geoattend import create_app  # noqa: E402
from geoattend.services.lifecycle_service import ClassLifecycleService  # noqa: E402

# Create Flask application instance
app = create_app(os.getenv('FLASK_ENV', 'production'))

if app.config['AUTO_END_CLASSES']:
    lifecycle = ClassLifecycleService(
        app, interval_seconds=app.config['CLASS_SWEEP_INTERVAL_SECONDS']
    )
    lifecycle.start()
    atexit.register(lifecycle.stop, 5)

if __name__ == "__main__":
    app.run()
