#!/usr/bin/env python3
"""
Development server for the GreenCycle engine.

Production runs the ``run:app`` object under a WSGI server instead.
"""
import os

from greencycle import create_app

app = create_app(os.getenv('FLASK_ENV', 'development'))

if __name__ == '__main__':
    app.run(
        host=os.getenv('HOST', '127.0.0.1'),
        port=int(os.getenv('PORT', 5000)),
        debug=app.config.get('DEBUG', False),
    )
