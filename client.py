"""
Python client for the myMadrassa API.

Queries are cached per ``(path, params)`` key and stay cached until a
mutation invalidates them; identical queries issued at the same time share a
single request. Failed requests are never retried.
"""
import logging
import threading

import requests

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = 'Er is een fout opgetreden'
CSRF_HEADER = 'X-CSRFToken'


class ApiClientError(Exception):
    def __init__(self, status, message=None):
        self.status = status
        self.message = message or FALLBACK_MESSAGE
        super().__init__(f"{status}: {self.message}")


def error_message(response):
    """The server's ``message`` field, else the raw body, else the status text"""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get('message'):
        return body['message']
    return response.text or response.reason or FALLBACK_MESSAGE


class _PendingQuery:
    def __init__(self):
        self.done = threading.Event()
        self.result = None
        self.error = None
        self.stale = False


class ApiClient:
    def __init__(self, base_url, session=None, timeout=30):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.csrf_token = None
        self._cache = {}
        self._pending = {}
        self._lock = threading.Lock()

    @staticmethod
    def cache_key(path, params=None):
        items = tuple(sorted((name, str(value)) for name, value in (params or {}).items() if value is not None))
        return path, items

    def request(self, method, path, params=None, json=None, raw=False):
        headers = {}
        if method != 'GET' and self.csrf_token:
            headers[CSRF_HEADER] = self.csrf_token
        try:
            response = self.session.request(method, f"{self.base_url}{path}", params=params, json=json,
                                            headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ApiClientError(None, FALLBACK_MESSAGE) from e

        if not response.ok:
            raise ApiClientError(response.status_code, error_message(response))
        if raw:
            return response.content
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def query(self, path, params=None):
        key = self.cache_key(path, params)
        with self._lock:
            if key in self._cache:
                return self._cache[key]
            pending = self._pending.get(key)
            owner = pending is None
            if owner:
                pending = self._pending[key] = _PendingQuery()

        if not owner:
            pending.done.wait()
            if pending.error is not None:
                raise pending.error
            return pending.result

        try:
            pending.result = self.request('GET', path, params=dict(key[1]))
        except Exception as e:
            pending.error = e
            raise
        finally:
            with self._lock:
                if self._pending.get(key) is pending:
                    del self._pending[key]
                if pending.error is None and not pending.stale:
                    self._cache[key] = pending.result
            pending.done.set()
        return pending.result

    def invalidate(self, *prefixes):
        """Drop every cached query whose path starts with one of ``prefixes``"""
        with self._lock:
            for key in [key for key in self._cache if key[0].startswith(prefixes)]:
                del self._cache[key]
            for key, pending in list(self._pending.items()):
                if key[0].startswith(prefixes):
                    pending.stale = True
                    del self._pending[key]

    def refetch(self, path, params=None):
        """Forget the cached result for exactly this query and run it again"""
        key = self.cache_key(path, params)
        with self._lock:
            self._cache.pop(key, None)
        return self.query(path, params)

    def mutate(self, method, path, json=None, invalidate=()):
        if self.csrf_token is None:
            self.refresh_csrf_token()
        result = self.request(method, path, json=json)
        if isinstance(invalidate, str):
            invalidate = (invalidate,)
        if invalidate:
            self.invalidate(*invalidate)
        return result

    def download(self, path, json=None, method='POST'):
        if method != 'GET' and self.csrf_token is None:
            self.refresh_csrf_token()
        return self.request(method, path, json=json, raw=True)

    def refresh_csrf_token(self):
        self.csrf_token = self.request('GET', '/api/auth/csrf-token')['csrfToken']
        return self.csrf_token

    def login(self, email, password):
        user = self.mutate('POST', '/api/auth/login', json={'email': email, 'password': password})
        # Login clears the server session and the CSRF token with it
        self.refresh_csrf_token()
        with self._lock:
            self._cache.clear()
        return user['user']

    def logout(self):
        self.mutate('POST', '/api/auth/logout')
        self.csrf_token = None
        with self._lock:
            self._cache.clear()


class Poller:
    """Re-run a query every ``interval`` seconds and hand the result to ``callback``"""

    def __init__(self, client, path, interval=30, params=None, callback=None):
        self.client = client
        self.path = path
        self.interval = interval
        self.params = params
        self.callback = callback
        self.last_result = None
        self.last_error = None
        self._stop = threading.Event()
        self._thread = None

    def poll(self):
        try:
            self.last_result = self.client.refetch(self.path, self.params)
        except ApiClientError as e:
            # Next tick tries again; polls are never retried in between
            self.last_error = e
            logger.warning("Polling %s failed: %s", self.path, e)
            return None
        self.last_error = None
        if self.callback is not None:
            try:
                self.callback(self.last_result)
            except Exception:
                logger.exception("Poll callback for %s failed", self.path)
        return self.last_result

    def _run(self):
        while not self._stop.is_set():
            try:
                self.poll()
            except Exception:
                logger.exception("Polling %s failed", self.path)
            self._stop.wait(self.interval)

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=f"poller{self.path}", daemon=True)
        self._thread.start()
        return self

    def stop(self):
        self._stop.set()
        thread, self._thread = self._thread, None
        # A callback may stop its own poller
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval)
