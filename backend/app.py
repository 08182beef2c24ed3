# backend/app.py
import os
import asyncio
import base64
import logging
import re
import secrets
from datetime import datetime, timezone
from flask import Flask, Response, request, jsonify, send_from_directory, stream_with_context
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import requests
from services.composer import QueueSink, render_page
from services.location import GeoContext
from services.settings import Credentials, NWS_RADAR_BASE, RADAR_TIMEOUT_SECONDS, RATE_LIMIT_DEFAULTS

STATIC_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'static')

app = Flask(__name__, static_folder=None)
CORS(app, resources={r"/radarproxy/*": {"origins": "*", "methods": ["GET"]}})

limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=RATE_LIMIT_DEFAULTS,
    storage_uri="memory://"
)

logging.basicConfig(
    level=getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

CREDENTIALS = Credentials.from_env()

RADAR_STATION = re.compile(r'^[A-Za-z0-9]{4}$')
STREAM_CHUNK_BYTES = 64 * 1024


def generate_nonce():
    return base64.b64encode(secrets.token_bytes(16)).decode('ascii')


def page_headers(nonce):
    csp = '; '.join([
        "default-src 'self'",
        f"script-src 'self' 'nonce-{nonce}' 'strict-dynamic' https://unpkg.com",
        f"style-src 'self' 'nonce-{nonce}' https://unpkg.com",
        "img-src 'self' data: blob: https://*.stadiamaps.com",
        "connect-src 'self' https://*.stadiamaps.com https://unpkg.com",
        "font-src 'self' https://*.stadiamaps.com",
        "worker-src blob:",
        "child-src blob:",
        "base-uri 'none'",
        "frame-ancestors 'none'",
        "object-src 'none'",
    ])
    return {
        'Content-Type': 'text/html; charset=utf-8',
        'Content-Security-Policy': csp,
        'X-Frame-Options': 'DENY',
        'X-Content-Type-Options': 'nosniff',
        'Referrer-Policy': 'strict-origin-when-cross-origin',
        'Cross-Origin-Opener-Policy': 'same-origin',
        'Cross-Origin-Resource-Policy': 'same-site',
        'Cross-Origin-Embedder-Policy': 'credentialless',
        'Permissions-Policy': 'interest-cohort=()',
        'Cache-Control': 'no-store',
    }


def stream_page(geo, nonce):
    """Drive ``render_page`` on a private event loop, one fragment per step."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    sink = QueueSink()
    task = loop.create_task(render_page(sink, geo, CREDENTIALS, nonce))
    try:
        while True:
            fragment = loop.run_until_complete(sink.get())
            if fragment is None:
                break
            if fragment:
                yield fragment
        try:
            loop.run_until_complete(task)
        except Exception as e:
            logger.exception(f"Page render failed after streaming began: {e}")
    finally:
        if not task.done():
            task.cancel()
            try:
                loop.run_until_complete(task)
            except asyncio.CancelledError:
                logger.info("Page render cancelled by client disconnect")
        loop.close()
        asyncio.set_event_loop(None)


@app.route('/', methods=['GET'])
def home():
    geo = GeoContext.from_request(
        request.headers,
        request.remote_addr,
        request.environ.get('SERVER_PROTOCOL')
    )
    nonce = generate_nonce()
    logger.info(f"Rendering page for {geo.ip or 'unknown'} ({geo.country or '??'}, {geo.latitude}, {geo.longitude})")
    return Response(stream_with_context(stream_page(geo, nonce)), headers=page_headers(nonce))


@app.route('/radarproxy/', methods=['GET'])
@limiter.limit("120 per minute")
def radar_proxy():
    station = request.args.get('id', '')
    if not RADAR_STATION.match(station) or 'refreshed' not in request.args:
        return not_found(None)

    url = f"{NWS_RADAR_BASE}/{station.upper()}_loop.gif"
    try:
        upstream = requests.get(url, stream=True, timeout=RADAR_TIMEOUT_SECONDS)
        upstream.raise_for_status()
    except requests.RequestException as e:
        logger.warning(f"Radar fetch failed for {station.upper()}: {e}")
        return jsonify({
            'success': False,
            'error': 'Radar image unavailable',
            'code': 502
        }), 502

    def relay():
        try:
            for chunk in upstream.iter_content(chunk_size=STREAM_CHUNK_BYTES):
                if chunk:
                    yield chunk
        finally:
            upstream.close()

    response = Response(stream_with_context(relay()), mimetype=upstream.headers.get('Content-Type', 'image/gif'))
    response.headers['Cache-Control'] = 'public, max-age=31536000, immutable'
    response.headers['Vary'] = 'Origin'
    return response


@app.route('/favicon.svg', methods=['GET'])
def favicon_svg():
    return send_from_directory(STATIC_DIR, 'favicon.svg', mimetype='image/svg+xml', max_age=86400)


@app.route('/favicon.ico', methods=['GET'])
def favicon_ico():
    return send_from_directory(STATIC_DIR, 'favicon.ico', mimetype='image/x-icon', max_age=86400)


@app.route('/robots.txt', methods=['GET'])
def robots_txt():
    return send_from_directory(STATIC_DIR, 'robots.txt', mimetype='text/plain', max_age=86400)


@app.route('/health', methods=['GET'])
@limiter.exempt
def health_check():
    return jsonify({
        'status': 'healthy',
        'service': 'IP Geolocation + Weather',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'providers': {
            'waqi': CREDENTIALS.waqi_token is not None,
            'nws': CREDENTIALS.nws_agent is not None,
            'airnow': CREDENTIALS.airnow_key is not None
        },
        'environment': os.getenv('FLASK_ENV', 'production')
    }), 200


@app.errorhandler(404)
def not_found(error):
    return jsonify({
        'success': False,
        'error': 'Endpoint not found',
        'code': 404
    }), 404


@app.errorhandler(405)
def method_not_allowed(error):
    response = jsonify({
        'success': False,
        'error': 'Method not allowed',
        'code': 405
    })
    response.status_code = 405
    response.headers['Allow'] = 'GET'
    return response


@app.errorhandler(500)
def internal_error(error):
    logger.exception(f"Internal server error: {error}")
    return jsonify({
        'success': False,
        'error': 'Internal server error',
        'code': 500
    }), 500


@app.errorhandler(429)
def ratelimit_handler(e):
    return jsonify({
        'success': False,
        'error': 'Rate limit exceeded',
        'code': 429,
        'retry_after': str(e.description)
    }), 429


if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV') == 'development'

    logger.info("=" * 80)
    logger.info("IP Geolocation + Weather")
    logger.info("=" * 80)
    logger.info(f"Server: Running on port {port}")
    logger.info(f"Environment: {os.getenv('FLASK_ENV', 'production')}")
    logger.info(f"WAQI token: {'configured' if CREDENTIALS.waqi_token else 'missing'}")
    logger.info(f"NWS user agent: {'configured' if CREDENTIALS.nws_agent else 'missing'}")
    logger.info(f"AirNow key: {'configured' if CREDENTIALS.airnow_key else 'missing'}")
    logger.info("=" * 80)

    app.run(host='0.0.0.0', port=port, debug=debug, threaded=True)
