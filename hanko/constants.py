"""Shared constants for hanko."""

VERSION = "0.4.0"
USER_AGENT = f"hanko/{VERSION}"

DEFAULT_SOURCE_NAME = "github"
GITHUB_API_URL = "https://api.github.com"
GITLAB_URL = "https://gitlab.com"

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MAX_PAGES = 10
DEFAULT_TIMEOUT = 10.0
DEFAULT_PER_PAGE = 100
