"""Runtime configuration.

Credentials and settings live under a single runtime home directory:
    .env                     - overrides (GOOGLE_API_RUNTIME_TIMEOUT, ...)
    credentials.json         - OAuth client secrets from Google Cloud Console
    token.json               - OAuth tokens written by GoogleOAuth
    service_account_key.json - service account key

The home directory defaults to ~/.config/google-api-runtime and can be moved
with the GOOGLE_API_RUNTIME_HOME environment variable. The .env file is loaded
on import; variables already set in the environment take precedence.
"""

import os
from pathlib import Path

RUNTIME_HOME = Path(
    os.environ.get("GOOGLE_API_RUNTIME_HOME", Path.home() / ".config" / "google-api-runtime")
).expanduser()

# Credential file paths
ENV_FILE = RUNTIME_HOME / ".env"
GOOGLE_CREDENTIALS = RUNTIME_HOME / "credentials.json"
GOOGLE_TOKEN = RUNTIME_HOME / "token.json"
GOOGLE_SERVICE_ACCOUNT = RUNTIME_HOME / "service_account_key.json"

USER_AGENT = "google-api-runtime/0.1.0"


def _load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from a file.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


def _timeout_from_env(default: float = 30.0) -> float:
    value = os.environ.get("GOOGLE_API_RUNTIME_TIMEOUT")
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"GOOGLE_API_RUNTIME_TIMEOUT must be a number, got {value!r}") from None


def ensure_runtime_home() -> Path:
    """Create the runtime home directory if it doesn't exist.

    Returns:
        Path to the runtime home directory.
    """
    RUNTIME_HOME.mkdir(parents=True, exist_ok=True)
    return RUNTIME_HOME


def get_credential_status() -> dict:
    """Get status of all configured credentials.

    Returns:
        Dictionary with credential status.
    """
    return {
        "runtime_home": str(RUNTIME_HOME),
        "env_file": ENV_FILE.exists(),
        "google": {
            "credentials": GOOGLE_CREDENTIALS.exists(),
            "token": GOOGLE_TOKEN.exists(),
            "service_account": GOOGLE_SERVICE_ACCOUNT.exists(),
        },
        "timeout": DEFAULT_TIMEOUT,
    }


_loaded = _load_env_file(ENV_FILE)

# Read after .env so the file can set it
DEFAULT_TIMEOUT = _timeout_from_env()
