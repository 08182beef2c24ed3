from unittest.mock import MagicMock, patch

import pytest
import requests

import app as app_module
from services.settings import Credentials


@pytest.fixture
def client():
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client


@pytest.fixture
def radar_upstream():
    upstream = MagicMock()
    upstream.headers = {'Content-Type': 'image/gif'}
    upstream.iter_content.return_value = [b'GIF89a', b'frames']
    with patch('app.requests.get', return_value=upstream) as get:
        yield get, upstream


class TestPage:
    def test_streams_fragments_with_security_headers(self, client):
        seen = {}

        async def fake_render(sink, geo, credentials, nonce):
            seen.update(geo=geo, nonce=nonce)
            await sink.write('<p>one</p>')
            await sink.write('<p>two</p>')
            await sink.close()

        with patch('app.render_page', side_effect=fake_render):
            response = client.get('/', headers={'CF-IPCountry': 'US', 'CF-Connecting-IP': '203.0.113.7'})
            body = response.get_data(as_text=True)

        assert response.status_code == 200
        assert body == '<p>one</p><p>two</p>'
        assert response.headers['Content-Type'] == 'text/html; charset=utf-8'
        assert f"'nonce-{seen['nonce']}'" in response.headers['Content-Security-Policy']
        assert response.headers['X-Frame-Options'] == 'DENY'
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert response.headers['Cache-Control'] == 'no-store'
        assert seen['geo'].ip == '203.0.113.7'
        assert seen['geo'].country == 'US'

    def test_nonce_is_fresh_per_request(self, client):
        nonces = []

        async def fake_render(sink, geo, credentials, nonce):
            nonces.append(nonce)
            await sink.close()

        with patch('app.render_page', side_effect=fake_render):
            client.get('/').get_data()
            client.get('/').get_data()

        assert len(set(nonces)) == 2
        assert all(len(nonce) == 24 for nonce in nonces)

    def test_full_page_without_credentials(self, client):
        with patch.object(app_module, 'CREDENTIALS', Credentials()):
            response = client.get('/', headers={'CF-IPCountry': 'FR', 'CF-IPLatitude': '48.8566',
                                                'CF-IPLongitude': '2.3522', 'CF-Timezone': 'Europe/Paris'})
            body = response.get_data(as_text=True)

        assert response.status_code == 200
        assert 'IP Geolocation' in body
        assert 'WAQI ➖' in body
        assert body.rstrip().endswith('</html>')

    def test_other_methods_not_allowed(self, client):
        response = client.post('/')

        assert response.status_code == 405
        assert response.headers['Allow'] == 'GET'
        assert response.get_json()['code'] == 405


class TestRadarProxy:
    def test_passes_through_the_loop(self, client, radar_upstream):
        get, upstream = radar_upstream

        response = client.get('/radarproxy/?id=ktwx&refreshed=14600000', headers={'Origin': 'https://example.test'})

        assert response.status_code == 200
        assert response.data == b'GIF89aframes'
        assert response.mimetype == 'image/gif'
        assert response.headers['Cache-Control'] == 'public, max-age=31536000, immutable'
        assert 'Origin' in response.headers['Vary']
        assert response.headers['Access-Control-Allow-Origin'] == '*'
        args, kwargs = get.call_args
        assert args[0] == 'https://radar.weather.gov/ridge/standard/KTWX_loop.gif'
        assert kwargs['stream'] is True
        assert kwargs['timeout'] > 0
        upstream.close.assert_called_once()

    @pytest.mark.parametrize('query', ['', '?id=KTWX', '?id=KTW&refreshed=1', '?id=../../x&refreshed=1'])
    def test_requires_station_and_refresh_bucket(self, client, radar_upstream, query):
        get, _ = radar_upstream

        response = client.get(f'/radarproxy/{query}')

        assert response.status_code == 404
        get.assert_not_called()

    def test_upstream_failure(self, client):
        with patch('app.requests.get', side_effect=requests.ConnectionError('down')):
            response = client.get('/radarproxy/?id=KTWX&refreshed=1')

        assert response.status_code == 502
        assert response.get_json()['success'] is False

    def test_upstream_error_status(self, client, radar_upstream):
        _, upstream = radar_upstream
        upstream.raise_for_status.side_effect = requests.HTTPError('404 Client Error')

        response = client.get('/radarproxy/?id=KXXX&refreshed=1')

        assert response.status_code == 502


class TestStaticAndHealth:
    def test_favicon_svg(self, client):
        response = client.get('/favicon.svg')

        assert response.status_code == 200
        assert response.mimetype == 'image/svg+xml'
        assert b'<svg' in response.data

    def test_favicon_ico(self, client):
        response = client.get('/favicon.ico')

        assert response.status_code == 200
        assert response.mimetype == 'image/x-icon'
        assert response.data[:4] == b'\x00\x00\x01\x00'

    def test_robots(self, client):
        response = client.get('/robots.txt')

        assert response.status_code == 200
        assert b'User-agent: *' in response.data

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'

    def test_unknown_path(self, client):
        response = client.get('/api/weather/current')

        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'error': 'Endpoint not found', 'code': 404}
