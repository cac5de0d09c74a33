import logging
import os

from dotenv import load_dotenv
from google_auth_oauthlib.flow import InstalledAppFlow

from client import SCOPES, load_client_config, save_credentials
from settings import config_path, load_json_config, resolve_state_paths


load_dotenv()


def _oauth_port() -> int:
    return int(os.getenv("OAUTH_PORT", "0"))


def authorize(credentials_path: str, token_path: str) -> None:
    """Run the installed-app consent flow and store the resulting token."""

    if not credentials_path or not os.path.exists(credentials_path):
        raise RuntimeError(f"OAuth client secret not found: {credentials_path}")
    if not token_path:
        raise RuntimeError("gmail.tokenPath must be set in the config")

    client = load_client_config(credentials_path)
    flow = InstalledAppFlow.from_client_config({"installed": client}, SCOPES)
    creds = flow.run_local_server(port=_oauth_port(), open_browser=False)
    save_credentials(creds, token_path)
    logging.getLogger(__name__).info("Gmail token stored at %s", token_path)


def main() -> None:
    path = config_path()
    paths = resolve_state_paths(load_json_config(path), path)
    authorize(paths.credentials_path, paths.token_path)


if __name__ == "__main__":
    main()
