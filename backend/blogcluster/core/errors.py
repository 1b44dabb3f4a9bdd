"""Domain errors raised by services and translated to HTTP in the routers."""


class PayloadError(ValueError):
    """Inbound payload is malformed or incomplete (HTTP 400)."""


class NotFound(LookupError):
    """Referenced row does not exist (HTTP 404)."""


class JobNotFound(NotFound):
    def __init__(self, job_id: str) -> None:
        super().__init__("Job not found")
        self.job_id = job_id


class ClusterNotFound(NotFound):
    def __init__(self, cluster_id: str) -> None:
        super().__init__(f"Cluster not found: {cluster_id}")
        self.cluster_id = cluster_id


class JobAccessDenied(PermissionError):
    def __init__(self, job_id: str) -> None:
        super().__init__("Forbidden")
        self.job_id = job_id


class DispatchError(RuntimeError):
    """The automation engine rejected or never received a trigger (HTTP 502)."""

    def __init__(self, job_id: str, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.job_id = job_id
        self.detail = detail
        self.status_code = status_code
