import logging
from typing import List, Optional, Tuple

import requests
import urllib3

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8006
DEFAULT_TIMEOUT = 30
DEFAULT_PROBE_TIMEOUT = 5


class ProxmoxAuthError(Exception):
    pass


class ProxmoxAPIError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class VMNotFoundError(ProxmoxAPIError):
    def __init__(self, identifier):
        super().__init__(f"VM '{identifier}' not found in cluster")
        self.identifier = identifier


class TaskFailedError(ProxmoxAPIError):
    def __init__(self, upid, exitstatus):
        super().__init__(f"Task {upid} failed: {exitstatus}")
        self.upid = upid
        self.exitstatus = exitstatus


class TaskStatusError(ProxmoxAPIError):
    def __init__(self, upid, status):
        super().__init__(f"Unknown task status for {upid}: {status!r}")
        self.upid = upid
        self.status = status


class TaskTimeoutError(ProxmoxAPIError):
    pass


def parse_host_port(host: str, default_port: int = DEFAULT_PORT) -> Tuple[str, int]:
    """Split 'host:port', keeping the default port when no valid one is given."""
    name, sep, port = host.partition(':')
    if sep:
        try:
            return name, int(port)
        except ValueError:
            pass
    return host, default_port


class ProxmoxClient:
    def __init__(self, host, token=None, port=DEFAULT_PORT, verify_ssl=True, timeout=DEFAULT_TIMEOUT):
        """
        Initialize the Proxmox API client.

        :param host: Proxmox host (e.g., 'pve.example.com')
        :param token: API token in 'user@realm!tokenid=secret' format
        :param port: API port
        :param verify_ssl: Whether to verify SSL certificates
        :param timeout: Request timeout in seconds
        """
        self.host = host
        self.port = port
        self.token = token
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.base_url = f"https://{host}:{port}/api2/json"
        self.session = requests.Session()
        if token:
            self.session.headers.update({'Authorization': f'PVEAPIToken={token}'})
        if not verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @classmethod
    def from_hosts(cls, hosts: List[str], token: Optional[str] = None, port: int = DEFAULT_PORT,
                   verify_ssl: bool = True, timeout: int = DEFAULT_TIMEOUT,
                   probe_timeout: int = DEFAULT_PROBE_TIMEOUT) -> 'ProxmoxClient':
        """
        Connect to the first host in the list that answers a version probe.

        Hosts are tried strictly in order. Each entry may carry its own port
        ('host:port'), otherwise the given port is used.

        :param hosts: Candidate hosts
        :param probe_timeout: Timeout in seconds for each probe
        :return: ProxmoxClient bound to the first responsive host
        """
        if not hosts:
            raise ValueError("No hosts given")
        for entry in hosts:
            host, host_port = parse_host_port(entry, port)
            client = cls(host, token, host_port, verify_ssl, timeout=probe_timeout)
            try:
                client.version()
            except ProxmoxAPIError as e:
                logger.warning(f"Host {entry} unavailable: {e}")
                client.session.close()
                continue
            client.timeout = timeout
            logger.info(f"Connected to {host}:{host_port}")
            return client
        raise ProxmoxAuthError(f"All hosts failed: {', '.join(hosts)}")

    def _request(self, method, path, params=None, data=None):
        """
        Perform a request and unwrap the 'data' envelope.

        :param method: HTTP method
        :param path: API path (e.g., '/cluster/resources')
        :param params: Optional query parameters
        :param data: Optional form body
        :return: Content of the response's 'data' field
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            resp = self.session.request(method, url, params=params, data=data,
                                        verify=self.verify_ssl, timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.Timeout:
            raise ProxmoxAPIError("Request timed out")
        except requests.exceptions.SSLError:
            raise ProxmoxAPIError("SSL verification failed")
        except requests.exceptions.HTTPError as e:
            raise ProxmoxAPIError(f"HTTP {e.response.status_code}: {e.response.text}",
                                  status_code=e.response.status_code)
        except requests.exceptions.RequestException as e:
            raise ProxmoxAPIError(f"Request failed: {e}")
        try:
            payload = resp.json()
        except ValueError:
            raise ProxmoxAPIError(f"Invalid response from {path}: body is not JSON")
        if not isinstance(payload, dict) or 'data' not in payload:
            raise ProxmoxAPIError(f"Invalid response from {path}: missing 'data'")
        return payload['data']

    def get(self, path, params=None):
        return self._request('GET', path, params=params)

    def post(self, path, data=None):
        return self._request('POST', path, data=data)

    def delete(self, path):
        return self._request('DELETE', path)

    def version(self):
        """Return the server's version document."""
        return self.get('/version')

    def check_connection(self):
        """
        Verify that the API answers with the configured credentials.

        :return: Version document
        """
        try:
            version = self.version()
        except ProxmoxAPIError as e:
            raise ProxmoxAuthError(f"Connection to {self.host}:{self.port} failed: {e}")
        logger.info("Authentication successful")
        return version
