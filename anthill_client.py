"""Anthill Pro REST client with authentication, per-client TLS settings and unit-of-work handling."""

import logging
import ssl
import threading
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from exceptions import ConnectError, DataAccessError
from models import ProjectSummary, Workflow

logger = logging.getLogger('anthill_migrator.client')


class KeystoreAdapter(HTTPAdapter):
    """HTTP adapter using a client-specific SSL context instead of process-wide settings."""

    def __init__(self, ssl_context: ssl.SSLContext, **kwargs):
        self.ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs['ssl_context'] = self.ssl_context
        return super().init_poolmanager(*args, **kwargs)


def build_ssl_context(keystore_path: str, keystore_password: Optional[str] = None) -> ssl.SSLContext:
    """
    Build an SSL context from a PEM keystore.

    The keystore's certificates are trusted for server verification. When a
    password is given the keystore must also hold the (encrypted) client key
    and certificate, which are presented to the server.

    Args:
        keystore_path: Path to a PEM bundle
        keystore_password: Password of the client key, if any

    Returns:
        Configured SSL context

    Raises:
        ConnectError: If the keystore cannot be read
    """
    try:
        context = ssl.create_default_context(cafile=keystore_path)
        if keystore_password:
            context.load_cert_chain(keystore_path, password=keystore_password)
    except (OSError, ssl.SSLError) as e:
        raise ConnectError(f"Could not load keystore {keystore_path}", e)

    return context


class UnitOfWork:
    """
    A server-side transactional scope.

    Requests made while a unit of work is open carry its id. The scope is read
    only for a migration: callers cancel it, then close it.
    """

    def __init__(self, client: 'AnthillClient', uow_id: str):
        self.client = client
        self.id = uow_id
        self.closed = False

    def cancel(self) -> None:
        """Roll back anything done in this unit of work."""
        if self.closed:
            return
        self.client._make_request('POST', f'/unit-of-work/{self.id}/cancel', expected_status=None)
        logger.debug(f"Cancelled unit of work {self.id}")

    def close(self) -> None:
        """Release the unit of work on the server."""
        if self.closed:
            return
        try:
            self.client._make_request('DELETE', f'/unit-of-work/{self.id}', expected_status=None)
        finally:
            self.closed = True
            self.client._release_unit_of_work(self)
            logger.debug(f"Closed unit of work {self.id}")

    def __enter__(self) -> 'UnitOfWork':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            self.cancel()
        except (ConnectError, DataAccessError) as e:
            logger.warning(f"Failed to cancel unit of work {self.id}: {e}")
        self.close()


class AnthillClient:
    """Anthill Pro REST client bound to one set of credentials and TLS settings."""

    API_PREFIX = '/rest/'
    UOW_HEADER = 'X-Unit-Of-Work'

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        keystore_path: Optional[str] = None,
        keystore_password: Optional[str] = None,
        scheme: str = 'https',
        timeout: int = 30,
        max_retries: int = 3,
        retry_backoff_factor: float = 2.0
    ):
        """
        Initialize the client without contacting the server (see connect()).

        Args:
            host: Anthill server host name
            port: Anthill server port
            username: Anthill user name
            password: Anthill password
            keystore_path: Optional PEM keystore for TLS
            keystore_password: Optional password of the client key in the keystore
            scheme: "https" or "http"
            timeout: HTTP request timeout in seconds
            max_retries: Maximum retry attempts for transient errors on reads
            retry_backoff_factor: Exponential backoff factor

        Raises:
            ConnectError: If the keystore cannot be loaded
        """
        if not host:
            raise ConnectError("Anthill host name is required")

        self.host = host
        self.port = port
        self.username = username
        self.base_url = f"{scheme}://{host}:{port}"
        self.timeout = timeout

        self._bound_thread: Optional[int] = None
        self._unit_of_work: Optional[UnitOfWork] = None
        self._lock = threading.Lock()

        self.session: Optional[requests.Session] = requests.Session()
        self.session.auth = (username, password)
        self.session.headers['Accept'] = 'application/json'

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=retry_backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"]
        )

        if keystore_path:
            adapter = KeystoreAdapter(
                build_ssl_context(keystore_path, keystore_password),
                max_retries=retry_strategy
            )
            logger.info(f"Using keystore {keystore_path} for {self.base_url}")
        else:
            adapter = HTTPAdapter(max_retries=retry_strategy)

        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        logger.debug(f"Client configured for {self.base_url} as {username}, timeout={timeout}s, "
                     f"max_retries={max_retries}")

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        username: str,
        password: str,
        keystore_path: Optional[str] = None,
        keystore_password: Optional[str] = None,
        **kwargs
    ) -> 'AnthillClient':
        """
        Create a client and verify the credentials against the server.

        Raises:
            ConnectError: On bad credentials, unreachable host or unreadable keystore
        """
        client = cls(host, port, username, password, keystore_path, keystore_password, **kwargs)
        try:
            client.authenticate()
        except ConnectError:
            client.disconnect()
            raise
        return client

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'AnthillClient':
        """Connect using the ``anthill`` section of a configuration dictionary."""
        anthill = config.get('anthill', {})
        advanced = config.get('advanced', {})
        return cls.connect(
            host=anthill.get('host'),
            port=anthill.get('port'),
            username=anthill.get('username'),
            password=anthill.get('password'),
            keystore_path=anthill.get('keystore_path'),
            keystore_password=anthill.get('keystore_password'),
            scheme=anthill.get('scheme', 'https'),
            timeout=advanced.get('request_timeout', 30),
            max_retries=advanced.get('max_retries', 3)
        )

    def authenticate(self) -> Dict[str, Any]:
        """
        Check the credentials with a lightweight request.

        Returns:
            The current user as reported by the server

        Raises:
            ConnectError: If the server rejects the credentials or cannot be reached
        """
        try:
            response = self._make_request('GET', '/users/current')
        except ConnectError as e:
            logger.error(f"Could not connect to Anthill Pro at {self.base_url}: {e}")
            raise
        except DataAccessError as e:
            raise ConnectError("Unexpected answer from Anthill Pro while authenticating", e)

        logger.info(f"Connected to Anthill Pro at {self.base_url} as {self.username}")
        return response.json()

    def _make_request(
        self,
        method: str,
        endpoint: str,
        expected_status: Optional[int] = 200,
        allow_404: bool = False,
        **kwargs
    ) -> requests.Response:
        """
        Make an HTTP request to the Anthill API, translating failures.

        Args:
            method: HTTP method
            endpoint: Path below the API prefix (e.g. "/workflows/12")
            expected_status: Status treated as success; None accepts any 2xx/3xx
            allow_404: Return 404 responses instead of raising
            **kwargs: Additional arguments for requests

        Returns:
            Response object

        Raises:
            ConnectError: On 401/403 or connectivity failures
            DataAccessError: On any other HTTP error
        """
        if self.session is None:
            raise ConnectError("Client is disconnected")

        url = urljoin(self.base_url, self.API_PREFIX + endpoint.lstrip('/'))

        if self._unit_of_work is not None:
            headers = kwargs.setdefault('headers', {})
            headers[self.UOW_HEADER] = self._unit_of_work.id

        logger.debug(f"API Request: {method} {url}")

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.error(f"Request timeout after {self.timeout}s: {method} {url}")
            raise ConnectError(f"Timed out talking to Anthill Pro at {self.base_url}", e)
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error: {method} {url}")
            raise ConnectError(
                f"Could not reach Anthill Pro at {self.base_url}; check the host name and port", e
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error: {method} {url} - {str(e)}")
            raise DataAccessError(f"Request to Anthill Pro failed: {method} {endpoint}", e)

        logger.debug(f"API Response: {response.status_code} {url}")

        if response.status_code in (401, 403):
            raise ConnectError(
                f"Anthill Pro refused {self.username} ({response.status_code}); "
                f"this is probably a username/password problem"
            )

        if allow_404 and response.status_code == 404:
            return response

        if expected_status is not None and response.status_code != expected_status:
            raise DataAccessError(
                f"Anthill Pro returned {response.status_code} for {method} {endpoint}"
                f"{self._error_details(response)}"
            )

        if expected_status is None and response.status_code >= 400:
            raise DataAccessError(
                f"Anthill Pro returned {response.status_code} for {method} {endpoint}"
                f"{self._error_details(response)}"
            )

        return response

    @staticmethod
    def _error_details(response: requests.Response) -> str:
        """Extract the server's error message from a failed response, if any."""
        try:
            error_json = response.json()
        except ValueError:
            return ""

        if isinstance(error_json, dict):
            for key in ('message', 'error'):
                if key in error_json:
                    return f" - {error_json[key]}"
        return ""

    @staticmethod
    def _json(response: requests.Response, what: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DataAccessError(f"Anthill Pro returned malformed {what}", e)

    # Thread binding

    def bind(self) -> None:
        """Bind the client to the calling thread for the duration of a migration."""
        with self._lock:
            self._bound_thread = threading.get_ident()
        logger.debug(f"Client bound to thread {self._bound_thread}")

    def unbind(self) -> None:
        """Release the thread binding."""
        with self._lock:
            self._bound_thread = None
        logger.debug("Client unbound")

    # Transactions

    def create_unit_of_work(self) -> UnitOfWork:
        """
        Open a unit of work on the server.

        Raises:
            DataAccessError: If the server refuses to open one
        """
        response = self._make_request('POST', '/unit-of-work', expected_status=None)
        data = self._json(response, 'unit of work')

        try:
            uow = UnitOfWork(self, str(data['id']))
        except (KeyError, TypeError) as e:
            raise DataAccessError("Anthill Pro returned a unit of work without an id", e)

        self._unit_of_work = uow
        logger.debug(f"Opened unit of work {uow.id}")
        return uow

    def _release_unit_of_work(self, uow: UnitOfWork) -> None:
        if self._unit_of_work is uow:
            self._unit_of_work = None

    # Queries

    def restore_workflow(self, workflow_id: int) -> Optional[Workflow]:
        """
        Fetch a workflow with its job definition.

        Args:
            workflow_id: Anthill workflow id

        Returns:
            Workflow, or None if it does not exist

        Raises:
            DataAccessError: On query failure or malformed payload
        """
        response = self._make_request('GET', f'/workflows/{workflow_id}', allow_404=True)

        if response.status_code == 404:
            return None

        data = self._json(response, 'workflow')
        if not isinstance(data, dict):
            raise DataAccessError(f"Malformed workflow payload for workflow {workflow_id}: expected an object")

        try:
            return Workflow.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DataAccessError(f"Malformed workflow payload for workflow {workflow_id}", e)

    def restore_projects_like_name(self, pattern: str) -> List[ProjectSummary]:
        """
        Fetch projects whose name matches a pattern, with their originating workflows.

        Args:
            pattern: Project name pattern; Anthill matches it as a substring

        Raises:
            DataAccessError: On query failure or malformed payload
        """
        response = self._make_request('GET', '/projects', params={'name': pattern})
        data = self._json(response, 'project list')
        if not isinstance(data, list):
            raise DataAccessError("Malformed project list payload: expected a list")

        try:
            return [ProjectSummary.from_dict(project) for project in data]
        except (AttributeError, KeyError, TypeError) as e:
            raise DataAccessError("Malformed project list payload", e)

    def disconnect(self) -> None:
        """Close the HTTP session. The client is unusable afterwards."""
        if self.session is not None:
            self.session.close()
            self.session = None
            logger.debug(f"Disconnected from {self.base_url}")


__all__ = ['AnthillClient', 'UnitOfWork', 'KeystoreAdapter', 'build_ssl_context']
