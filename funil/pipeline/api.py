import requests

DEFAULT_TIMEOUT = 10


class PipelineAPIError(Exception):
    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class PipelineAPI:
    """Thin HTTP client for the pipeline endpoints."""

    def __init__(self, base_url, token=None, session=None, timeout=DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        if token:
            self.session.headers['Authorization'] = f'Bearer {token}'

    @classmethod
    def login(cls, base_url, email, password, **kwargs):
        api = cls(base_url, **kwargs)
        data = api._request('POST', '/api/auth/login', json={'email': email, 'password': password})
        api.session.headers['Authorization'] = f"Bearer {data['accessToken']}"
        return api

    def _request(self, method, path, **kwargs):
        try:
            r = self.session.request(method, f'{self.base_url}{path}', timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise PipelineAPIError(f'Falha de conexão: {e}') from e

        try:
            data = r.json()
        except ValueError:
            data = {}

        if not r.ok:
            raise PipelineAPIError(data.get('error') or f'HTTP {r.status_code}', status=r.status_code)
        return data

    def fetch_board(self):
        return self._request('GET', '/api/pipeline').get('columns', [])

    def move(self, client_id, new_stage_id, sale_data=None):
        payload = {'clientId': client_id, 'newStageId': new_stage_id}
        if sale_data is not None:
            payload['saleData'] = sale_data
        return self._request('POST', '/api/pipeline/move', json=payload)

    def list_products(self, search=None):
        params = {'search': search} if search else None
        return self._request('GET', '/api/products', params=params).get('products', [])
