# src/fdoctl/config/const.py
from __future__ import annotations

# Defaults; every value here can be overridden from fdoctl.yaml or the environment.
FIXTURE_DIR: str = "./.tmp/fdo"
REPOS_DIR: str = "./.tmp/repos"
STATE_DIR: str = "./.tmp/state"

GO_FDO_SERVER_URL: str = "https://github.com/fido-device-onboard/go-fdo-server.git"
GO_FDO_SERVER_COMMIT: str = "01a7aa7be9f58f17ad40242380e3e92b169bc307"

GO_FDO_CLIENT_URL: str = "https://github.com/fido-device-onboard/go-fdo-client.git"
GO_FDO_CLIENT_COMMIT: str = "21cb545547f06f77cba3aad2aa45fc1d1eeee781"

SERVICE_HOST: str = "localhost"
SERVICE_IP: str = "127.0.0.1"
RENDEZVOUS_PORT: int = 8041
MANUFACTURER_PORT: int = 8038
OWNER_PORT: int = 8043

# Certificate subject template: C=US, O=Example, CN=<role>
CERT_COUNTRY: str = "US"
CERT_ORGANIZATION: str = "Example"
CERT_VALIDITY_DAYS: int = 365

ROLE_COMMON_NAMES: dict[str, str] = {
    "manufacturer": "Manufacturer",
    "device_ca": "Device CA",
    "owner": "Owner",
}
