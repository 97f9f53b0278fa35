"""
Development server for the LifePulse API.
Run from backend/: python run.py
"""
import os
from lifepulse import create_app
from lifepulse.services.notifications import ConsoleBackend

# USE_CONSOLE_PUSH=1 logs push messages instead of sending them through Firebase
push_backend = ConsoleBackend() if os.getenv('USE_CONSOLE_PUSH') == '1' else None

app = create_app(push_backend=push_backend)

if __name__ == '__main__':
    host = os.getenv('FLASK_HOST', '0.0.0.0')
    port = int(os.getenv('PORT', 5000))
    is_production = os.getenv('FLASK_ENV') == 'production'

    if is_production:
        raise RuntimeError('Use a WSGI server (e.g. gunicorn "run:app") in production.')

    app.run(host=host, port=port, debug=True)
