"""Power Datacenter authentication and work info module.

This module handles:
- Logging in to the Power Datacenter portal with username and password
- Keeping the JSESSIONID session token for later requests
- Fetching the current work info (telemetry snapshot) for one inverter
"""

import logging
from typing import Optional

from pdc_exporter.client import SESSION_COOKIE, PDCClient
from pdc_exporter.errors import PDCAuthError
from pdc_exporter.workinfo import WorkInfo, parse_work_info

# Configure module logger
logger = logging.getLogger(__name__)

PATH_LOGIN = "/cmc/login_system.html"
PATH_WORK_INFO = "/cmc/getWorkInfo.html"
PROTOCOL = "41"


class PDCSession:
    """Authenticated session against the Power Datacenter portal.

    The portal signals a failed login by omitting the JSESSIONID cookie
    rather than by returning an error status, so login() checks for the
    cookie explicitly.

    There is no automatic re-login. Once the token expires every fetch fails
    until the process is restarted.

    Attributes:
        base_url: Portal base URL
        serial_number: Inverter serial number to query
        protocol: Protocol version sent with work info requests
        session_id: JSESSIONID value, empty until login() succeeds
        work_info: Last successfully fetched snapshot
    """

    def __init__(
        self,
        base_url: str,
        serial_number: str,
        client: Optional[PDCClient] = None
    ):
        """Initialize the session.

        Args:
            base_url: Portal base URL
            serial_number: Inverter serial number
            client: Optional preconfigured client (used by tests)
        """
        self.base_url = base_url
        self.serial_number = serial_number
        self.protocol = PROTOCOL
        self.session_id = ""
        self.work_info = WorkInfo()
        self._client = client if client is not None else PDCClient(base_url)

    @property
    def authenticated(self) -> bool:
        return bool(self.session_id)

    def login(self, username: str, password: str) -> None:
        """Exchange credentials for a JSESSIONID and store it.

        Args:
            username: Portal username
            password: Portal password

        Raises:
            PDCAuthError: If the response carries no JSESSIONID cookie
            PDCHTTPError: If the portal answers with a non-200 status
            PDCConnectionError: If the portal cannot be reached
        """
        logger.info(f"Logging in to {self.base_url} as {username}")

        response = self._client.post_form(
            PATH_LOGIN,
            "",
            {"username": username, "password": password},
        )

        session_id = response.cookies.get(SESSION_COOKIE)
        if not session_id:
            raise PDCAuthError(
                f"Login failed, {SESSION_COOKIE} cookie not found in response"
            )

        self.session_id = session_id
        logger.info("Login successful")

    def fetch_snapshot(self) -> WorkInfo:
        """Retrieve the current work info for the configured serial number.

        The stored snapshot is only replaced once the whole response has been
        decoded.

        Returns:
            The freshly decoded WorkInfo

        Raises:
            PDCDecodeError: If the body is not valid work info JSON
            PDCHTTPError: If the portal answers with a non-200 status
            PDCConnectionError: If the portal cannot be reached
        """
        response = self._client.post_empty(
            PATH_WORK_INFO,
            self.session_id,
            params={"serialNo": self.serial_number, "protocol": self.protocol},
        )

        work_info = parse_work_info(response.body)
        self.work_info = work_info

        logger.debug(f"Fetched work info for {self.serial_number}: {work_info}")
        return work_info


def main():
    """Log in and fetch one snapshot using credentials from the environment."""
    import os

    from dotenv import load_dotenv

    from pdc_exporter.errors import PDCError

    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    load_dotenv()

    base_url = os.getenv("PDC_BASEURL", "")
    serial_number = os.getenv("PDC_SERIALNUMBER", "")

    print(f"Testing Power Datacenter session for {serial_number} at {base_url}")
    print("=" * 60)

    session = PDCSession(base_url, serial_number)

    try:
        print("\n1. Testing authentication...")
        session.login(os.getenv("PDC_USERNAME", ""), os.getenv("PDC_PASSWORD", ""))
        print("   Authentication successful!")

        print("\n2. Testing work info fetch...")
        info = session.fetch_snapshot()
        print(f"   Serial: {info.serial_no or '(not reported)'}")
        print(f"   Work mode: {info.work_mode}")
        print(f"   Battery: {info.battery_capacity}% at {info.battery_voltage} V")
        print(f"   PV input power: {info.total_pv_input_power} W")

    except PDCAuthError as e:
        print(f"\n   Authentication FAILED: {e}")
        return False
    except PDCError as e:
        print(f"\n   Request FAILED: {e}")
        return False

    print("\n" + "=" * 60)
    print("All checks passed!")
    return True


if __name__ == "__main__":
    import sys
    success = main()
    sys.exit(0 if success else 1)
