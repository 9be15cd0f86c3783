#!/usr/bin/env python3
"""
Main entry point for the meeting point API

Environment:
  HOST=0.0.0.0 (default)          # Host interface
  PORT=5001 (default)             # Port to bind
  MEETPOINT_ENV=production        # serve with waitress instead of the Flask dev server
  WSGI_THREADS=8 (default)        # waitress worker threads
  GOOGLE_MAPS_API_KEY=...         # enables live routes and place search
"""

import os

from dotenv import load_dotenv

load_dotenv()

from meetpoint.app import create_app  # noqa: E402

app = create_app()


def main():
    host = os.getenv('HOST', '0.0.0.0')
    try:
        port = int(os.getenv('PORT', '5001'))
    except ValueError:
        port = 5001

    if os.getenv('MEETPOINT_ENV', 'development').lower() == 'production':
        from waitress import serve

        print(f"\n🚀 Starting meeting point API (prod) on http://{host}:{port}")
        serve(app, host=host, port=port, threads=int(os.getenv('WSGI_THREADS', '8')))
    else:
        print(f"\n🚀 Starting meeting point API (dev) on http://{host}:{port}")
        app.run(debug=True, host=host, port=port)


if __name__ == '__main__':
    main()
