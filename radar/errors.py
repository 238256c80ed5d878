"""Exception types raised across the scanner."""


class RadarError(Exception):
    """Base class for scanner errors."""


class MissingVolumeError(RadarError):
    """Container has no bind-mounted persistent storage."""

    def __init__(self, container_id: str):
        super().__init__(f"No volume found for container {container_id}")
        self.container_id = container_id


class PlatformAPIError(RadarError):
    """A hosting control-plane request failed."""

    def __init__(self, endpoint: str, message: str, status_code: int | None = None):
        super().__init__(f"Platform API error ({endpoint}): {message}")
        self.endpoint = endpoint
        self.status_code = status_code
