"""
NDFC API client for the calls the migration needs.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

import requests
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from ndfc_migrate.config import DEFAULT_TIMEOUT
from ndfc_migrate.errors import NDFCAPIError, NDFCConnectionError

logger = logging.getLogger(__name__)

_NOT_IN_PAIR_RE = re.compile(r'not\b.*\bvpc', re.IGNORECASE)


class NDFCClient:
    """Client for the NDFC lan-fabric REST API."""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        domain: str = "local",
        verify_ssl: bool = False,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize NDFC client.

        Args:
            host: NDFC controller hostname or IP
            username: NDFC username
            password: NDFC password
            domain: Login domain (local, radius, tacacs, ...)
            verify_ssl: Whether to verify SSL certificates
            timeout: Seconds allowed for every request
            session: Optional pre-built session, used by tests
        """
        self.host = host.rstrip('/')
        if not self.host.startswith("http"):
            self.host = f"https://{self.host}"
        self.username = username
        self.password = password
        self.domain = domain
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.token = None
        self.base_url = f"{self.host}/appcenter/cisco/ndfc/api/v1/lan-fabric/rest"
        self.session = session or requests.Session()

        if not verify_ssl:
            # Suppress SSL warnings for self-signed certificates
            urllib3.disable_warnings(InsecureRequestWarning)

    def login(self) -> bool:
        """
        Authenticate with NDFC and obtain access token.

        Returns:
            bool: True if login successful
        """
        url = f"{self.host}/login"
        payload = {
            "userName": self.username,
            "userPasswd": self.password,
            "domain": self.domain
        }

        try:
            response = self.session.post(url, json=payload, verify=self.verify_ssl, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to authenticate to NDFC at {self.host}: {e}")
            return False

        self.token = data.get('jwttoken') or data.get('token') or data.get('Dcnm-Token')
        if not self.token:
            logger.error("No token received from NDFC")
            return False

        self.session.headers.update({
            'Authorization': f"Bearer {self.token}",
            'Dcnm-Token': self.token,
            'Content-Type': 'application/json'
        })
        logger.info(f"Successfully authenticated to NDFC at {self.host}")
        return True

    def logout(self):
        self.session.close()
        logger.debug("Closed NDFC session")

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Send one request and decode the JSON answer.

        Raises:
            NDFCConnectionError: the controller could not be reached
            NDFCAPIError: the controller answered with a non-2xx status
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, verify=self.verify_ssl, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise NDFCConnectionError(f"{method} {path} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise NDFCAPIError(method, path, response.status_code, _error_message(response))

        if not response.text.strip():
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # --- fabrics ---

    def get_fabrics(self) -> List[Dict[str, Any]]:
        fabrics = self._request("GET", "control/fabrics") or []
        logger.info(f"Retrieved {len(fabrics)} fabrics")
        return fabrics

    def create_fabric(self, payload: Dict[str, Any]) -> Any:
        """Create a fabric from a render_fabric payload."""
        path = f"control/fabrics/{payload['fabricName']}/{payload['templateName']}"
        return self._request("POST", path, json=payload["nvPairs"])

    def config_save(self, fabric_name: str) -> Any:
        return self._request("POST", f"control/fabrics/{fabric_name}/config-save")

    def config_deploy(self, fabric_name: str) -> Any:
        return self._request("POST", f"control/fabrics/{fabric_name}/config-deploy", params={"forceShowRun": "false"})

    # --- inventory ---

    def get_inventory(self, fabric_name: str) -> List[Dict[str, Any]]:
        """Switches managed in a fabric, pre-provisioned ones included."""
        switches = self._request("GET", f"control/fabrics/{fabric_name}/inventory/switchesByFabric") or []
        logger.info(f"Retrieved {len(switches)} switches from fabric {fabric_name}")
        return switches

    def test_reachability(self, fabric_name: str, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self._request("POST", f"control/fabrics/{fabric_name}/inventory/test-reachability", json=payload) or []

    def discover_switches(self, fabric_name: str, payload: Dict[str, Any]) -> Any:
        return self._request("POST", f"control/fabrics/{fabric_name}/inventory/discover", json=payload)

    def get_poap_switches(self, fabric_name: str) -> List[Dict[str, Any]]:
        """Switches that have booted and are waiting for POAP bootstrap."""
        return self._request("GET", f"control/fabrics/{fabric_name}/inventory/poap") or []

    def preprovision_switch(self, fabric_name: str, payload: Dict[str, Any]) -> Any:
        return self._request("POST", f"control/fabrics/{fabric_name}/inventory/poap", json=[payload])

    def bootstrap_switch(self, fabric_name: str, payload: Dict[str, Any]) -> Any:
        return self._request("POST", f"control/fabrics/{fabric_name}/inventory/poap", json=[payload])

    def set_switch_roles(self, roles: List[Dict[str, Any]]) -> Any:
        return self._request("POST", "control/switches/roles", json=roles)

    # --- policies ---

    def get_switch_policies(self, serials: Iterable[str]) -> List[Dict[str, Any]]:
        serials = sorted(set(serials))
        if not serials:
            return []
        return self._request("GET", "control/policies/switches", params={"serialNumber": ",".join(serials)}) or []

    def create_policy(self, payload: Dict[str, Any]) -> Any:
        return self._request("POST", "control/policies/bulk-create", json=payload)

    # --- vpc ---

    def get_vpc_pair(self, serial: str) -> Optional[Dict[str, Any]]:
        """The switch's VPC pair, None when it is not paired."""
        try:
            return self._request("GET", "vpcpair", params={"serialNumber": serial})
        except NDFCAPIError as e:
            if e.status_code == 404 or _NOT_IN_PAIR_RE.search(e.message or ""):
                return None
            raise

    def create_vpc_pair(self, payload: Dict[str, Any]) -> Any:
        return self._request("POST", "vpcpair", json=payload)

    # --- interfaces ---

    def get_interfaces(self, serial: str) -> List[Dict[str, Any]]:
        """
        Interfaces of a switch, flattened to {serialNumber, ifName, policy}.

        The controller groups interfaces by policy; each group lists its members.
        """
        groups = self._request("GET", "interface", params={"serialNumber": serial}) or []
        flattened = []
        for group in groups:
            for item in group.get("interfaces", []):
                flattened.append({
                    "serialNumber": item.get("serialNumber") or item.get("serialNo") or serial,
                    "ifName": item.get("ifName", ""),
                    "policy": group.get("policy", ""),
                })
        return flattened

    def create_interface(self, payload: Dict[str, Any]) -> Any:
        # physical ports always exist on the controller, so they are updated in place
        method = "PUT" if payload.get("interfaceType") == "INTERFACE_ETHERNET" else "POST"
        return self._request(method, "interface", json=payload)


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or data)
    return str(data)[:500]
